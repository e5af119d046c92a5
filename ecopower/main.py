import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ecopower.db import mongo
from ecopower.errors import EcopowerError
from ecopower.messages.realtime import ConnectionRegistry

from ecopower.auth.api import router as auth_router
from ecopower.houses.api import router as houses_router
from ecopower.residents.api import router as residents_router
from ecopower.consumptions.api import router as consumptions_router
from ecopower.invoices.api import router as invoices_router
from ecopower.messages.api import router as messages_router
from ecopower.notifications.api import router as notifications_router
from ecopower.admin.api import router as admin_router
from ecopower.contact.api import router as contact_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await mongo.ensure_indexes(mongo.db)
    app.state.connections = ConnectionRegistry()
    logger.info("🚀 Ecopower démarré")
    yield
    app.state.connections.clear()
    mongo.client.close()
    logger.info("🛑 Ecopower arrêté")


app = FastAPI(title="Ecopower", lifespan=lifespan)


@app.exception_handler(EcopowerError)
async def ecopower_error_handler(request: Request, exc: EcopowerError):
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path} : {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error(traceback.format_exc())
    return JSONResponse(status_code=500, content={"detail": "Erreur interne du serveur"})


# Ajout des routers avec préfixes
app.include_router(auth_router, prefix="/auth")
app.include_router(houses_router)
app.include_router(residents_router)
app.include_router(consumptions_router)
app.include_router(invoices_router)
app.include_router(messages_router)
app.include_router(notifications_router)
app.include_router(admin_router)
app.include_router(contact_router)

# Middleware CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # à restreindre en prod
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    return {"message": "Bienvenue sur l'API Ecopower !"}
