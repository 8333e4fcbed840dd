# gunicorn.conf.py  (run: gunicorn -c gunicorn.conf.py astrosync.main:app)
import multiprocessing, os

bind = f"0.0.0.0:{os.getenv('PORT', '5000')}"
# cusp solving and window scans are CPU-bound; one sync thread per worker
workers = int(os.getenv("WEB_CONCURRENCY", max(2, multiprocessing.cpu_count())))
threads = 1
worker_class = "sync"

# each worker loads its own ephemeris kernel on first use
preload_app = False
max_requests = int(os.getenv("GUNICORN_MAX_REQUESTS", "2000"))
max_requests_jitter = 200

timeout = int(os.getenv("GUNICORN_TIMEOUT", "90"))
graceful_timeout = 30
keepalive = 2

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
access_log_format = '%(h)s "%(r)s" %(s)s %(b)s rt:%(L)s req_id:%({X-Request-ID}i)s'
