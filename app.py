import os
import logging

from flask import Flask, request, jsonify, send_from_directory
from flask_login import login_user, logout_user, login_required, current_user
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy import inspect
from werkzeug.exceptions import HTTPException

import config
from extensions import db, migrate, login_manager
from errors import InventarioError
from event_bus import NullEventBus
from notifier import EmailNotifier
from helpers import payload
from log_activity import log_activity
from tipos_inventario import inicializar_tipos_inventario


def init_tables(app):
    """
    Crea el esquema si la base está vacía. Con tablas existentes no hace
    nada: los cambios de esquema van por Flask-Migrate.
    """
    with app.app_context():
        try:
            inspector = inspect(db.engine)
            if not inspector.get_table_names():
                app.logger.info("No se encontraron tablas, creando esquema completo...")
                db.create_all()
                inicializar_tipos_inventario()
                db.session.commit()
                app.logger.info("Tablas creadas con los tipos de inventario iniciales.")
            else:
                app.logger.info("Las tablas de la base de datos ya existen.")
        except (OperationalError, ProgrammingError):
            app.logger.error(
                f"No se pudo conectar a la base de datos '{config.DB_CONFIG['database']}'. "
                "Verifique que exista y que las credenciales sean correctas.",
                exc_info=True
            )
            raise


def register_error_handlers(app):

    @app.errorhandler(InventarioError)
    def handle_inventario_error(error):
        db.session.rollback()
        if error.status_code >= 500:
            app.logger.error(f"{error.code}: {error.message}", exc_info=True)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'error': error.name.lower().replace(' ', '_'), 'message': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        app.logger.error(f"Error no controlado en {request.method} {request.path}: {error}", exc_info=True)
        return jsonify({'error': 'error_interno', 'message': 'Ocurrió un error interno.'}), 500


def register_auth_routes(app):
    from models import User, Role

    @app.route('/setup', methods=['POST'])
    def setup():
        """Crea la primera cuenta de administrador."""
        if User.query.count() > 0:
            return jsonify({'error': 'ya_configurado',
                            'message': 'El sistema ya ha sido configurado. Por favor, inicie sesión.'}), 409

        datos = payload()
        username = (datos.get('username') or '').strip()
        password = datos.get('password') or ''
        if not username or not password:
            return jsonify({'error': 'validacion', 'message': 'Ambos campos son requeridos.'}), 400

        try:
            admin_role = Role.query.filter_by(name='admin').first()
            if not admin_role:
                admin_role = Role(name='admin', description='Administrador del sistema')
                db.session.add(admin_role)

            admin_user = User(username=username)
            admin_user.set_password(password)
            admin_user.roles.append(admin_role)
            db.session.add(admin_user)
            db.session.flush()
            log_activity(action=f"Configuración inicial: administrador {username}", category="Login",
                         resource_id=admin_user.id)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        login_user(admin_user)
        return jsonify({'message': 'Configuración completada.', 'usuario': admin_user.to_dict()}), 201

    @app.route('/login', methods=['POST'])
    def login():
        if User.query.count() == 0:
            return jsonify({'error': 'sin_configurar',
                            'message': 'Cree primero la cuenta de administrador en /setup.'}), 409

        datos = payload()
        username = datos.get('username')
        user = User.query.filter_by(username=username).first()
        if not user or not user.check_password(datos.get('password') or ''):
            return jsonify({'error': 'credenciales_invalidas', 'message': 'Usuario o contraseña incorrectos.'}), 401

        login_user(user)
        log_activity(action=f"Inicio de sesión del usuario: {username}", category="Login")
        db.session.commit()
        return jsonify({'message': '¡Inicio de sesión exitoso!', 'usuario': user.to_dict()})

    @app.route('/logout', methods=['POST'])
    @login_required
    def logout():
        log_activity(action=f"Cierre de sesión del usuario: {current_user.username}", category="Logout")
        db.session.commit()
        logout_user()
        return jsonify({'message': 'Sesión cerrada.'})

    @app.route('/me')
    @login_required
    def me():
        return jsonify({'usuario': current_user.to_dict()})


def create_app(config_overrides=None, event_bus=None, notifier=None):
    """
    Fábrica de la aplicación. event_bus y notifier se inyectan (las pruebas
    pasan dobles); por omisión no hay bus de eventos y el correo sale por SMTP.
    """
    app = Flask(__name__)
    app.config.update(
        SECRET_KEY=config.SECRET_KEY,
        SQLALCHEMY_DATABASE_URI=config.SQLALCHEMY_DATABASE_URI,
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        UPLOAD_FOLDER=config.UPLOAD_FOLDER,
        ALLOWED_EXTENSIONS=config.ALLOWED_EXTENSIONS,
        MAX_FOTOS_POR_LINEA=config.MAX_FOTOS_POR_LINEA,
        MAIL_CONFIG=dict(config.MAIL_CONFIG),
        FRONTEND_URL=config.FRONTEND_URL,
        WTF_CSRF_ENABLED=config.WTF_CSRF_ENABLED,
        LOG_LEVEL=config.LOG_LEVEL,
        INIT_TABLES=True,
    )
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config['LOG_LEVEL']).upper(), logging.INFO))

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.extensions['event_bus'] = event_bus if event_bus is not None else NullEventBus()
    app.extensions['notifier'] = notifier if notifier is not None else EmailNotifier(app.config['MAIL_CONFIG'])

    from models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'no_autenticado', 'message': 'Autenticación requerida.'}), 401

    from routes.articulos import articulos_bp
    from routes.documentos import documentos_bp
    from routes.firma import firma_bp
    from routes.usuarios import usuarios_bp
    from routes.tipos_inventario import tipos_inventario_bp

    app.register_blueprint(articulos_bp)
    app.register_blueprint(documentos_bp)
    app.register_blueprint(firma_bp)
    app.register_blueprint(usuarios_bp)
    app.register_blueprint(tipos_inventario_bp)

    register_error_handlers(app)
    register_auth_routes(app)

    @app.route('/uploads/<path:filename>')
    @login_required
    def serve_uploaded_file(filename):
        return send_from_directory(app.config['UPLOAD_FOLDER'], filename)

    if app.config['INIT_TABLES']:
        init_tables(app)

    return app


# --- Bloque para ejecutar la aplicación en modo de desarrollo ---
if __name__ == '__main__':
    app = create_app()
    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)
    app.run(debug=True)
