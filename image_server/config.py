"""Configuration settings for the image blob server."""
import os

# Request limits
MAX_LENGTH = 10 * 1024 * 1024  # 10MB
CHUNK_SIZE = 8192

# Blob constraints
MAX_NAME_LENGTH = 255

# Authentication
API_KEY_HEADER = "API-Key"
API_KEY = os.getenv("IMAGE_SERVER_API_KEY", "")

# CORS
CORS_ORIGINS = ["*"]
CORS_METHODS = ["GET", "POST", "DELETE"]
CORS_HEADERS = ["Content-Type", API_KEY_HEADER]

# Directory paths
DATA_DIR = os.getenv("IMAGE_SERVER_DATA_DIR", "./images")
TEMP_DIR = os.getenv("IMAGE_SERVER_TEMP_DIR", "./temp")
LOG_DIR = os.getenv("IMAGE_SERVER_LOG_DIR", "./logs")

# Server
HOST = os.getenv("IMAGE_SERVER_HOST", "0.0.0.0")
PORT = int(os.getenv("IMAGE_SERVER_PORT", "8080"))
