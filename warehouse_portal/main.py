from fastapi import FastAPI

from warehouse_portal.logging_config import setup_logging
from warehouse_portal.routers import warehouse
from warehouse_portal.security.sessions import install_auth_middleware

setup_logging()

app = FastAPI(title='Warehouse Receipt Portal')

install_auth_middleware(app)

app.include_router(warehouse.router)


@app.get('/health')
def health() -> dict:
    return {'status': 'ok'}
