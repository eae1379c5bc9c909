from fastapi import FastAPI
from contextlib import asynccontextmanager
from debt_tracker.core.config import CORS_ORIGINS, LOG_LEVEL
from debt_tracker.core.errors import register_exception_handlers
from debt_tracker.core.logging_config import setup_logging
from debt_tracker.database import create_db_and_tables
from debt_tracker.api import debts, transactions
from fastapi.middleware.cors import CORSMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(LOG_LEVEL)
    create_db_and_tables()
    yield


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(debts.router)
app.include_router(transactions.router)


@app.get("/")
def root():
    return {"message": "Servidor de deudas y amortizaciones"}
