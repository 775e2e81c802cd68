# config.py
import os

# --- Configuración de la Base de Datos ---
DB_CONFIG = {
    'host': os.environ.get('DB_HOST', 'localhost'),
    'user': os.environ.get('DB_USER', 'root'),
    'password': os.environ.get('DB_PASSWORD', ''),
    'database': os.environ.get('DB_NAME', 'inventario_actas')
}

# DATABASE_URL tiene prioridad (útil para pruebas o despliegues con otro motor)
SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or (
    f"mysql+mysqlconnector://{DB_CONFIG['user']}:{DB_CONFIG['password']}"
    f"@{DB_CONFIG['host']}/{DB_CONFIG['database']}"
)

SECRET_KEY = os.environ.get('SECRET_KEY', 'cambia_esta_clave_en_produccion')
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

# --- Rutas de Archivos ---
project_dir = os.path.dirname(os.path.abspath(__file__))
parent_dir = os.path.dirname(project_dir)
UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER', os.path.join(parent_dir, 'uploads'))

# --- Extensiones Permitidas para Subidas ---
ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
MAX_FOTOS_POR_LINEA = 5

# --- Correo saliente ---
MAIL_CONFIG = {
    'server': os.environ.get('MAIL_SERVER', 'smtp.office365.com'),
    'port': int(os.environ.get('MAIL_PORT', '587')),
    'username': os.environ.get('MAIL_USERNAME', ''),
    'password': os.environ.get('MAIL_PASSWORD', ''),
    'sender_name': os.environ.get('MAIL_SENDER_NAME', 'Inventario - Actas'),
    'sender': os.environ.get('MAIL_SENDER', 'inventario@example.com'),
    # Buzón del área que recibe copias de firmas y avisos de rechazo
    'operaciones': os.environ.get('MAIL_OPERACIONES', ''),
    'enabled': os.environ.get('MAIL_ENABLED', 'false').lower() in ('1', 'true', 'si', 'yes'),
    'max_retries': int(os.environ.get('MAIL_MAX_RETRIES', '3')),
    'retry_delay': float(os.environ.get('MAIL_RETRY_DELAY', '2')),
    'timeout': int(os.environ.get('MAIL_TIMEOUT', '20')),
}

# URL pública del front-end donde el receptor abre el enlace de firma
FRONTEND_URL = os.environ.get('FRONTEND_URL', 'http://localhost:4200')

# La API es JSON: sin CSRF en los formularios de validación
WTF_CSRF_ENABLED = False
