# Register all blueprints here
def register_blueprints(app):
    from .leases import leases_bp
    from .payments import payments_bp
    from .reports import reports_bp
    from .revenue import revenue_bp

    app.register_blueprint(leases_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(revenue_bp)
