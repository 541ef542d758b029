import uvicorn

from . import config
from .logging_config import setup_logging


def main():
    setup_logging(config.LOG_LEVEL, config.LOG_FILE)
    # log_config=None keeps uvicorn from replacing the handlers set up above
    uvicorn.run("saigon_server.main:app", host=config.HOST, port=config.PORT, log_config=None)


if __name__ == "__main__":
    main()
