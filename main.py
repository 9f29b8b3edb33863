import logging
import uvicorn
from fastapi import FastAPI
from filestream.api.routers import files, media
from filestream.core.config import settings
from filestream.core.errors import setup_exception_handlers
from filestream.services.cleanup_service import setup_cleanup_tasks

# Configure logging
logging.basicConfig(level=logging.DEBUG if settings.DEBUG_STREAMS else logging.INFO)

# Create FastAPI application
app = FastAPI(title=settings.PROJECT_NAME)

# Render every error as {"error": ...}
setup_exception_handlers(app)

# Include routers
app.include_router(media.router)
app.include_router(files.router)

# Set up background cleanup tasks
setup_cleanup_tasks(app)

if __name__ == "__main__":
    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT)
