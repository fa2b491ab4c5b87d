"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nexus.api import ops
from nexus.api.errors import install_error_handlers
from nexus.communities import router as communities_router
from nexus.infra import postgres
from nexus.infra.redis import redis_client
from nexus.obs import init as obs_init
from nexus.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	try:
		yield
	finally:
		await postgres.close_pool()
		await redis_client.close()


app = FastAPI(title="Nexus Communities", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
if not allow_origins:
	allow_origins = ["http://localhost:3000"] if settings.is_dev() else []

# Starlette disallows wildcard '*' with allow_credentials=True.
if "*" in allow_origins:
	allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
obs_init(app)

app.include_router(ops.router, tags=["ops"])
app.include_router(communities_router)


def run() -> None:
	uvicorn.run(
		"nexus.main:app",
		host=settings.api_host,
		port=settings.api_port,
		log_config=None,
		reload=settings.is_dev(),
	)


if __name__ == "__main__":
	run()
