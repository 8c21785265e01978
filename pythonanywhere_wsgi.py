import os
import sys

from dotenv import load_dotenv

# Project directory on the host; override with STUDIO_CRM_HOME
project_home = os.getenv('STUDIO_CRM_HOME', '/home/yourusername/studio-crm')
if project_home not in sys.path:
    sys.path.insert(0, project_home)

# .env has to be loaded before config.py reads the environment
load_dotenv(os.path.join(project_home, '.env'))
os.environ.setdefault('FLASK_ENV', 'production')

from app import app as application
