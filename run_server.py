"""
Entry point for running the relay with uvicorn.

Listens on HOST:PORT from the environment (default 0.0.0.0:3000).
"""

if __name__ == "__main__":
    import uvicorn

    from notificator.settings import app_settings

    uvicorn.run(
        "notificator:application",
        factory=True,
        host=app_settings.HOST,
        port=app_settings.PORT,
    )
