import logging
import os

from fastapi import FastAPI

from lifesim.api.routes import router

logging.basicConfig(
    level=os.environ.get("LIFESIM_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="lifesim", version="0.1.0")
app.include_router(router)


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "lifesim", "version": "0.1.0"}
