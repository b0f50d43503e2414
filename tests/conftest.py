import os

# downloader.py attaches a FileHandler at import time
os.environ.setdefault("DOWNLOADER_LOG_FILE", os.devnull)
