# passenger_wsgi.py: minimal y compatible con cPanel/Passenger

import os
import sys

# Asegura el path del proyecto (directorio de este archivo)
PROJECT_PATH = os.path.dirname(os.path.abspath(__file__))
if PROJECT_PATH not in sys.path:
    sys.path.insert(0, PROJECT_PATH)

# Módulo de settings
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "core.settings")

# WSGI callable
from core.wsgi import application  # noqa: E402,F401
