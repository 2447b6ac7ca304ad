import uvicorn
from .core.config import settings


def main():
    uvicorn.run("school_admin.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
