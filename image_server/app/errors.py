class BlobServerError(Exception):
    """Base exception for the image blob server"""

    pass


class ValidationError(BlobServerError):
    """Raised when a request can't be accepted as sent"""

    pass


class RequestTooLargeError(ValidationError):
    """Raised when the request body exceeds the configured limit"""

    pass


class MalformedUploadError(ValidationError):
    """Raised when the multipart body can't be parsed"""

    pass


class MissingImageFieldError(ValidationError):
    """Raised when the multipart body has no 'image' file field"""

    def __init__(self):
        super().__init__("Image can't be fetched. Check if the parameter key is 'image'.")


class InvalidBlobNameError(ValidationError):
    """Raised when a blob name would leave the storage directory"""

    pass


class BlobNotFoundError(BlobServerError):
    """Raised when a requested blob does not exist"""

    def __init__(self, name: str):
        super().__init__(f"Blob {name} not found")
        self.name = name


class BlobStoreError(BlobServerError):
    """Raised when the storage directory can't be read or written"""

    pass
