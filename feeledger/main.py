import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from feeledger.api.v1.fees.router import router as fees_router
from feeledger.core.config import settings


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Fee Ledger")

    # CORS: allow the fee collection frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(fees_router)

    return app


app = create_app()
