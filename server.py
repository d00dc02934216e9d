from justbecause.main import app

# Re-export app for uvicorn
__all__ = ["app"]
