import logging
import queue
from PyQt6.QtCore import QThread, pyqtSignal

logger = logging.getLogger(__name__)

# Jobs that run without toggling the loading indicator
BACKGROUND_JOBS = ('sync_task', 'background_fetch')


class APIWorker(QThread):
    """Runs task operations off the UI thread, one queued job at a time.

    Every job reports on its own: taskCompleted(result, job_name) or
    taskError(exception, job_name).
    """
    taskCompleted = pyqtSignal(object, object)
    taskError = pyqtSignal(Exception, object)
    loadingChanged = pyqtSignal(bool)

    def __init__(self, parent=None):
        super().__init__(parent)
        self.queue = queue.Queue()
        self.running = True

    def add_task(self, job_name, func, **kwargs):
        """Add a job to the queue and make sure the thread is running."""
        self.queue.put((job_name, func, kwargs))

        if not self.isRunning():
            self.start()

    def submit(self, service, intent, **kwargs):
        """Queue a TaskService method by name, e.g. submit(service, 'add_task', title=...)."""
        self.add_task(intent, getattr(service, intent), **kwargs)

    def process_next(self, timeout=0.5):
        """Run one queued job. Returns False if the queue stayed empty."""
        try:
            job_name, func, kwargs = self.queue.get(block=True, timeout=timeout)
        except queue.Empty:
            return False

        try:
            if job_name not in BACKGROUND_JOBS:
                self.loadingChanged.emit(True)

            result = func(**kwargs)

            self.taskCompleted.emit(result, job_name)

        except Exception as e:
            logger.error("Error in worker thread (%s): %s", job_name, e)
            self.taskError.emit(e, job_name)

        finally:
            if job_name not in BACKGROUND_JOBS:
                self.loadingChanged.emit(False)
            self.queue.task_done()
        return True

    def run(self):
        """Main worker loop that processes queued jobs."""
        while self.running:
            self.process_next()
        logger.debug("Worker thread stopped")

    def stop(self):
        """Stop the worker thread."""
        self.running = False
        self.wait(1000)
