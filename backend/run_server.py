"""Development runner for the LendBox API.

    python run_server.py            # serve on HOST:PORT from .env
    python run_server.py --seed     # create the demo organization first
"""
import signal
import sys

import uvicorn

from lendbox.core.config import settings


def handle_signal(sig, frame):
    print(f"\nReceived signal {sig}, shutting down...")
    sys.exit(0)


def main(argv):
    if "--seed" in argv:
        import seed_demo

        seed_demo.main()

    print("=" * 50)
    print(f"  LendBox API ({settings.ENVIRONMENT})")
    print(f"  http://{settings.HOST}:{settings.PORT}/docs")
    print("=" * 50)
    uvicorn.run(
        "lendbox.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=settings.DEBUG and "--reload" in argv,
    )


if __name__ == "__main__":
    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)
    main(sys.argv[1:])
