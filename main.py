"""Main entry point for running the FastAPI application with auto-reload."""
import uvicorn

from handover.config import settings

if __name__ == "__main__":
    print(f"Starting {settings.app_name} v{settings.version}")
    print(f"Environment: {settings.environment.value}")
    print(f"Database: {settings.db.url.split('@')[-1] if '@' in settings.db.url else settings.db.url}")
    print(f"LLM: {settings.llm.model} ({'configured' if settings.llm.api_key else 'no API key'})")
    print(f"Auto-reload: {'Enabled' if settings.debug else 'Disabled'}")
    print("-" * 50)

    uvicorn.run(
        "handover.api:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        reload_dirs=["handover", "ai"] if settings.debug else None,
        log_level=settings.logging.level.lower(),
    )
