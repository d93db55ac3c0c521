"""cardmia_shared - Shared utilities for the Cardmia ECG Lambda functions.

Provides:
    - multipart/form-data decoding for the upload endpoints
    - storage-key derivation for doctor reports and profiles
    - S3 client singleton and object-storage wrapper
    - HTTP response helpers with CORS
"""

__version__ = "1.0.0"
