# module backend.app
"""
Instance globale de l'application, construite par backend.app_setup.factory.
"""
from backend.app_setup.factory import create_app

# App globale
app = create_app()
