import uvicorn

from crm_search.config import settings

if __name__ == "__main__":
    uvicorn.run("crm_search.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
