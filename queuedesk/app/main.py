# queuedesk/app/main.py
import logging

import uvicorn

from . import config


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("queuedesk.app.api:app", host=config.HOST, port=config.PORT, log_level="info")


if __name__ == '__main__':
    main()
