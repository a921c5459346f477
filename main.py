import uvicorn

from activity_report.app import create_app
from activity_report.core.config import get_settings

settings = get_settings()

app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host=settings.BACKEND_HOST, port=settings.BACKEND_PORT)
