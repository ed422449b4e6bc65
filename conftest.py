import os

# Qt widgets and fonts without a display server
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
