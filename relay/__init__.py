"""R2 relay service: stream remote files into an S3-compatible bucket."""

__version__ = "1.0.0"
