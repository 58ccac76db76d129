# Gunicorn configuration for production
import os
import sys

# Add current directory to Python path to ensure app can be imported
current_dir = os.path.dirname(os.path.abspath(__file__))
if current_dir not in sys.path:
    sys.path.insert(0, current_dir)

# Server socket
bind = f"0.0.0.0:{os.environ.get('PORT', '5001')}"
backlog = 2048

# Loaded conversations are kept in process memory, so a single worker;
# threads let uploads and review actions proceed while a deep scan runs
workers = 1
worker_class = 'gthread'
threads = int(os.environ.get('GUNICORN_THREADS', '4'))

# A deep scan may take the whole scan budget plus one in-flight request
scan_budget = int(float(os.environ.get('DEEP_SCAN_TIMEOUT_SECONDS', '300')))
request_budget = int(float(os.environ.get('OPENAI_TIMEOUT_SECONDS', '30')))
timeout = scan_budget + request_budget + 30
keepalive = 5

# WSGI application
wsgi_app = 'app:app'

# Logging
accesslog = '-'
errorlog = '-'
loglevel = os.environ.get('LOG_LEVEL', 'info')
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = 'convoscrub'
