import logging

from fastapi import FastAPI

from .config import get_settings
from .routers import auth, classes, reservations, stats, users
from .utils.request_id import request_id_middleware

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(title="Gym Booking API")
app.middleware("http")(request_id_middleware)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(classes.router)
app.include_router(reservations.router)
app.include_router(stats.router)
