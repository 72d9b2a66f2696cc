import os


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Base configuration"""

    # Object storage
    OBJ_HOST = os.environ.get('UPCLOUD_OBJ_HOST') or os.environ.get('OBJ_HOST')
    OBJ_REGION = os.environ.get('OBJ_REGION') or 'eu-west-1'
    OBJ_ACCESS_KEY = os.environ.get('OBJ_ACCESS_KEY')
    OBJ_SECRET_KEY = os.environ.get('OBJ_SECRET_KEY')

    # Remote configuration document: {CONFIG_BUCKET}/{CONFIG_IDENTIFIER}.yaml
    CONFIG_BUCKET = os.environ.get('CONFIG_BUCKET') or 'config'
    CONFIG_IDENTIFIER = os.environ.get('IMAGE_TAG') or os.environ.get('CONFIG_IDENTIFIER')

    # Dumps
    WORK_DIR = os.environ.get('BACKUP_WORK_DIR') or os.getcwd()
    CLEANUP_SWEEP = _env_bool('CLEANUP_SWEEP', True)
    MYSQLDUMP_BIN = os.environ.get('MYSQLDUMP_BIN') or 'mysqldump'
    MYSQLDUMP_OPTIONS = os.environ.get('MYSQLDUMP_OPTIONS', '')

    # Retention in days; an environment value stays a string until
    # mysqlbackup.main.build_config() checks it
    RETENTION_DAYS = os.environ.get('BACKUP_RETENTION_DAYS') or 30

    # Scheduler
    SCHEDULE_CRON = os.environ.get('BACKUP_SCHEDULE')
    SCHEDULER_TIMEZONE = 'UTC'

    # Logging
    DEBUG = False
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_DIR = os.environ.get('LOG_DIR')


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    LOG_LEVEL = 'DEBUG'

    # Keep dumps and logs inside the project tree
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    WORK_DIR = os.path.join(DATA_DIR, 'dumps')
    LOG_DIR = os.path.join(DATA_DIR, 'logs')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'default': ProductionConfig
}
