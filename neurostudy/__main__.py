import uvicorn

from neurostudy.config import settings

if __name__ == "__main__":
    uvicorn.run("neurostudy.main:app", host=settings.host, port=settings.port, log_level="info")
