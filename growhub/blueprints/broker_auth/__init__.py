from growhub.blueprints.broker_auth.routes import broker_auth_bp

__all__ = ["broker_auth_bp"]
