import logging
import signal
import time

from revsync.core.config import settings
from revsync.core.logging_config import configure_logging
from revsync.db.bootstrap import bootstrap_database
from revsync.db.session import SessionLocal, engine
from revsync.services.sync_service import SyncService, worker_group_name


logger = logging.getLogger(__name__)


def main() -> None:
    configure_logging()
    worker_name = worker_group_name('worker')
    idle_sleep = float(settings.sync_worker_idle_sleep_seconds)
    stop = {'flag': False}

    def _shutdown_handler(signum, _frame):  # type: ignore[no-untyped-def]
        logger.info('sync worker received signal %s, stopping...', signum)
        stop['flag'] = True

    signal.signal(signal.SIGTERM, _shutdown_handler)
    signal.signal(signal.SIGINT, _shutdown_handler)

    if settings.db_bootstrap_on_start:
        bootstrap_database(engine)
    service = SyncService(SessionLocal)

    logger.info('sync worker started: %s', worker_name)
    try:
        service.worker_bootstrap_cleanup([worker_name])
    except Exception:
        logger.exception('sync worker bootstrap cleanup failed worker=%s', worker_name)
    while not stop['flag']:
        try:
            ran = service.poll_and_run_next(worker_name=worker_name)
        except Exception:
            logger.exception('sync worker loop error')
            ran = False
        if not ran:
            time.sleep(max(0.5, idle_sleep))

    logger.info('sync worker stopped: %s', worker_name)


if __name__ == '__main__':
    main()
