"""
Shared pytest fixtures for mysqlbackup tests.

This module provides fixtures for:
- Test configuration classes
- Mock fixtures for external services (S3, mysqldump)
- Sample settings documents
"""

import os
import textwrap
from unittest.mock import MagicMock

import pytest
import boto3
from botocore.config import Config as BotoConfig
from moto import mock_aws

from mysqlbackup.config import Config
from mysqlbackup.backup.dumps import DumpError, MySQLDumper
from mysqlbackup.backup.storage import S3Storage


SETTINGS_YAML = textwrap.dedent("""\
    mysql:
      host: db.example.com
      port: 3306
      databases:
        - name: shop
          user: shop_backup
          password: s3cret
        - name: blog
          user: blog_backup
          password: hunter2
        - name: crm
          user: crm_backup
          password: pa55
    objectStore:
      bucket: test-backups
    """)


class FakeDumper(MySQLDumper):
    """
    Stands in for mysqldump: writes a small file, or fails for selected databases.
    """

    def __init__(self, fail_for=()):
        super().__init__('mysqldump')
        self.fail_for = set(fail_for)
        self.dumped = []

    async def dump(self, job):
        self.dumped.append(job.database_name)
        if job.database_name in self.fail_for:
            # mysqldump leaves a partial file behind when it fails mid-way
            with open(job.target_path, 'w') as f:
                f.write('-- partial\n')
            raise DumpError(f"mysqldump failed for {job.database_name} (exit code 2): Access denied")
        with open(job.target_path, 'w') as f:
            f.write(f'-- dump of {job.database_name}\nCREATE TABLE t (id INT);\n')
        return job.target_path


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake AWS credentials so boto3 never reaches a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def work_dir(tmp_path):
    """Empty directory dumps are written to."""
    path = tmp_path / 'dumps'
    path.mkdir()
    return path


@pytest.fixture
def test_config(work_dir):
    """
    Config class for tests.

    Uses the default S3 endpoint (mocked by moto) and a temporary work directory.
    """
    class TestConfig(Config):
        OBJ_HOST = None
        OBJ_REGION = 'us-east-1'
        OBJ_ACCESS_KEY = None
        OBJ_SECRET_KEY = None
        CONFIG_BUCKET = 'config'
        CONFIG_IDENTIFIER = 'v1.2.3'
        WORK_DIR = str(work_dir)
        CLEANUP_SWEEP = True
        MYSQLDUMP_BIN = 'mysqldump'
        MYSQLDUMP_OPTIONS = ''
        RETENTION_DAYS = 30
        SCHEDULE_CRON = None
        LOG_LEVEL = 'DEBUG'
        LOG_DIR = None

    return TestConfig


@pytest.fixture
def mock_s3(aws_credentials):
    """
    Mock S3 service using moto.

    Creates the 'config' bucket holding v1.2.3.yaml and an empty
    'test-backups' bucket in us-east-1.
    """
    with mock_aws():
        s3 = boto3.resource(
            's3',
            region_name='us-east-1',
            config=BotoConfig(s3={'addressing_style': 'path'}),
        )

        s3.create_bucket(Bucket='config')
        s3.create_bucket(Bucket='test-backups')
        s3.Object('config', 'v1.2.3.yaml').put(Body=SETTINGS_YAML.encode('utf-8'))

        yield s3


@pytest.fixture
def config_storage(mock_s3):
    """S3Storage bound to the mocked configuration bucket."""
    return S3Storage(bucket_name='config', region='us-east-1')


@pytest.fixture
def fake_dumper():
    return FakeDumper()


@pytest.fixture
def mock_storage():
    """
    MagicMock standing in for S3Storage.

    for_bucket() returns the same mock so uploads, listing and deletes
    can be asserted on one object.
    """
    storage = MagicMock(spec=S3Storage)
    storage.bucket_name = 'config'
    storage.get_text.return_value = SETTINGS_YAML
    storage.for_bucket.return_value = storage
    storage.upload.side_effect = lambda path, key=None: key or os.path.basename(path)
    storage.list_objects.return_value = []
    return storage


@pytest.fixture
def settings_document():
    """Sample settings YAML with three databases."""
    return SETTINGS_YAML
