import uvicorn  # type: ignore

from app.core import config
from app.utils import get_logger

log = get_logger(__name__)

if __name__ == "__main__":
    log.info("Running permissions server on %s:%d", config.HOST, config.PORT)
    uvicorn.run("app.main:app", reload=True, host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())
