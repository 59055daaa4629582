"""
Media app: chunked uploads, processing and batch downloads.

This app provides:
- Upload sessions against pre-signed object store URLs
- A processing pipeline that promotes, classifies and previews uploads
- Batch ZIP archives assembled on a dedicated worker queue
- A signed relay serving the local object store
"""
