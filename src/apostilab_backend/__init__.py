"""
Apostilab Backend - REST API for the apostila editing platform

This package provides a FastAPI-based web service behind the apostila
(educational handout) editor. It enables:

- User registration, login and logout with signed access tokens
- Account management (profile, password change, deletion)
- CRUD over user-owned HTML documents
- PDF export of those documents through headless Chromium
- Optional archiving of exported PDFs to S3

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - auth_service / user_service / apostila_service: business operations
    - users / apostilas / tokens: SQL stores over the SQLite schema
    - database: connections and versioned migrations
    - pdf_renderer: Playwright-driven HTML to PDF rendering
    - s3_service: S3 upload and presigned download URLs
    - configuration: layered settings (defaults, YAML, environment)

Usage:
    Run the API server with:
        uvicorn apostilab_backend.main:app --reload --host 0.0.0.0 --port 8080

    Or use the console scripts:
        apostilab-migrate
        apostilab-api
"""
