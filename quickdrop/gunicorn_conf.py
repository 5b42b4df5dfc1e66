import os

# gunicorn -c quickdrop/gunicorn_conf.py quickdrop.main:app
bind = f"{os.getenv('HOST', '127.0.0.1')}:{os.getenv('PORT', '8080')}"
# The item registry lives in process memory; a second worker would not see
# codes issued by the first.
workers = 1
worker_class = "uvicorn.workers.UvicornWorker"
# Large uploads over slow links
timeout = 600
keepalive = 5
accesslog = os.getenv("QUICKDROP_ACCESS_LOG", "-")
errorlog = os.getenv("QUICKDROP_ERROR_LOG", "-")
loglevel = "info"
daemon = False
