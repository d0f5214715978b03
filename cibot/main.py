from dotenv import load_dotenv


from fastapi import FastAPI

from cibot.api.api_v1 import router as api_v1
from cibot.core.lifespan import lifespan

load_dotenv()  # Load .env variables into os.environ for git and httpx proxies


app = FastAPI(title="cibot", lifespan=lifespan)


@app.get("/")
def root():
    return {"message": "Hello from cibot!"}


app.include_router(api_v1)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
