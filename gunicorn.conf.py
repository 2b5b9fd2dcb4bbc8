# gunicorn.conf.py
import multiprocessing, os

bind = f"0.0.0.0:{os.getenv('PORT','5000')}"
wsgi_app = "matchengine.main:create_app()"
workers = max(2, multiprocessing.cpu_count())
threads = int(os.getenv("GUNICORN_THREADS", "2"))  # background cache refreshes run on worker threads
worker_class = "gthread"
timeout = 30
graceful_timeout = 15
keepalive = 2
accesslog = "-"   # stdout
errorlog = "-"    # stderr
loglevel = os.getenv("LOGLEVEL", "info")

# add request id if present
access_log_format = (
    '%(h)s - "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" '
    'req_id:%({X-Request-ID}i)s rt:%(L)s'
)
