"""
Unit tests for scheduler (mysqlbackup/scheduler.py).

Tests APScheduler configuration and recurring backup runs.
"""

from unittest.mock import MagicMock, patch

import pytest
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from mysqlbackup import scheduler as scheduler_module
from mysqlbackup.backup.executor import RunSummary, JobResult


@pytest.fixture
def scheduled_config(test_config):
    class ScheduledConfig(test_config):
        SCHEDULE_CRON = '0 3 * * *'

    return ScheduledConfig


class TestSchedulerInitialization:
    """Test scheduler initialization."""

    def teardown_method(self):
        """Clean up after each test."""
        scheduler_module.scheduler = None
        scheduler_module.backup_config = None

    @patch('mysqlbackup.scheduler.BlockingScheduler')
    def test_init_scheduler(self, mock_scheduler_class, scheduled_config):
        mock_scheduler = MagicMock()
        mock_scheduler_class.return_value = mock_scheduler

        result = scheduler_module.init_scheduler(scheduled_config)

        assert result == mock_scheduler
        assert scheduler_module.scheduler == mock_scheduler
        assert scheduler_module.backup_config == scheduled_config

        call_kwargs = mock_scheduler_class.call_args[1]
        assert 'executors' in call_kwargs
        assert call_kwargs['job_defaults']['max_instances'] == 1
        assert call_kwargs['job_defaults']['coalesce'] is True
        assert call_kwargs['timezone'] == 'UTC'

        mock_scheduler.add_job.assert_called_once()
        job_kwargs = mock_scheduler.add_job.call_args[1]
        assert job_kwargs['id'] == scheduler_module.BACKUP_JOB_ID
        assert isinstance(job_kwargs['trigger'], CronTrigger)

    @patch('mysqlbackup.scheduler.BlockingScheduler')
    def test_init_scheduler_only_once(self, mock_scheduler_class, scheduled_config):
        result1 = scheduler_module.init_scheduler(scheduled_config)
        result2 = scheduler_module.init_scheduler(scheduled_config)

        assert result1 == result2
        mock_scheduler_class.assert_called_once()

    @patch('mysqlbackup.scheduler.BlockingScheduler')
    def test_init_without_schedule(self, mock_scheduler_class, test_config):
        with pytest.raises(ValueError):
            scheduler_module.init_scheduler(test_config)

        mock_scheduler_class.assert_not_called()
        assert scheduler_module.scheduler is None

    @patch('mysqlbackup.scheduler.BlockingScheduler')
    def test_init_with_invalid_cron(self, mock_scheduler_class, test_config):
        class BadCron(test_config):
            SCHEDULE_CRON = 'every night'

        with pytest.raises(ValueError):
            scheduler_module.init_scheduler(BadCron)

        mock_scheduler_class.assert_not_called()
        assert scheduler_module.scheduler is None


class TestSchedulerLifecycle:
    """Test scheduler start/stop operations."""

    def setup_method(self):
        self.mock_scheduler = MagicMock()
        self.mock_scheduler.running = False
        scheduler_module.scheduler = self.mock_scheduler

    def teardown_method(self):
        scheduler_module.scheduler = None
        scheduler_module.backup_config = None

    def test_start_scheduler(self):
        scheduler_module.start_scheduler()

        self.mock_scheduler.start.assert_called_once()

    def test_start_scheduler_handles_interrupt(self):
        self.mock_scheduler.start.side_effect = KeyboardInterrupt

        scheduler_module.start_scheduler()

        self.mock_scheduler.start.assert_called_once()

    def test_start_without_init(self):
        scheduler_module.scheduler = None

        with pytest.raises(RuntimeError):
            scheduler_module.start_scheduler()

    def test_stop_scheduler(self):
        self.mock_scheduler.running = True

        scheduler_module.stop_scheduler()

        self.mock_scheduler.shutdown.assert_called_once_with(wait=False)

    def test_stop_scheduler_not_running(self):
        scheduler_module.stop_scheduler()

        self.mock_scheduler.shutdown.assert_not_called()

    def test_trigger_backup_now(self):
        scheduler_module.trigger_backup_now()

        job_kwargs = self.mock_scheduler.add_job.call_args[1]
        assert isinstance(job_kwargs['trigger'], DateTrigger)
        assert job_kwargs['id'].startswith('manual_')

    def test_trigger_without_init(self):
        scheduler_module.scheduler = None

        with pytest.raises(RuntimeError):
            scheduler_module.trigger_backup_now()


class TestRunScheduler:
    """Test the blocking entry point."""

    def teardown_method(self):
        scheduler_module.scheduler = None
        scheduler_module.backup_config = None

    @patch('mysqlbackup.scheduler.signal.signal')
    @patch('mysqlbackup.scheduler.BlockingScheduler')
    def test_run_scheduler(self, mock_scheduler_class, mock_signal, scheduled_config):
        mock_scheduler = MagicMock()
        mock_scheduler_class.return_value = mock_scheduler

        exit_code = scheduler_module.run_scheduler(scheduled_config)

        assert exit_code == 0
        mock_scheduler.start.assert_called_once()
        mock_signal.assert_called_once()
        # Only the recurring job, no immediate run
        assert mock_scheduler.add_job.call_count == 1

    @patch('mysqlbackup.scheduler.signal.signal')
    @patch('mysqlbackup.scheduler.BlockingScheduler')
    def test_run_scheduler_run_now(self, mock_scheduler_class, mock_signal, scheduled_config):
        mock_scheduler = MagicMock()
        mock_scheduler_class.return_value = mock_scheduler

        scheduler_module.run_scheduler(scheduled_config, run_now=True)

        assert mock_scheduler.add_job.call_count == 2

    @patch('mysqlbackup.scheduler.BlockingScheduler')
    def test_run_scheduler_invalid_cron(self, mock_scheduler_class, test_config):
        class BadCron(test_config):
            SCHEDULE_CRON = '* * *'

        assert scheduler_module.run_scheduler(BadCron) == 1
        mock_scheduler_class.assert_not_called()


class TestBackupWrapper:
    """Test the job function executed by the scheduler."""

    def setup_method(self):
        scheduler_module.backup_config = MagicMock()

    def teardown_method(self):
        scheduler_module.backup_config = None

    @patch('mysqlbackup.scheduler.run_backup')
    def test_wrapper_runs_backup(self, mock_run_backup):
        mock_run_backup.return_value = RunSummary(exit_code=0)

        scheduler_module._execute_backup_wrapper()

        mock_run_backup.assert_called_once_with(scheduler_module.backup_config)

    @patch('mysqlbackup.scheduler.run_backup')
    def test_wrapper_reports_failed_jobs(self, mock_run_backup):
        from datetime import datetime, timezone

        failed = JobResult(database='shop', status='failed', started_at=datetime.now(timezone.utc))
        mock_run_backup.return_value = RunSummary(exit_code=0, jobs=[failed])

        scheduler_module._execute_backup_wrapper()

        mock_run_backup.assert_called_once()

    @patch('mysqlbackup.scheduler.run_backup')
    def test_wrapper_swallows_errors(self, mock_run_backup):
        """A failing run must not take the scheduler down."""
        mock_run_backup.side_effect = RuntimeError('boom')

        scheduler_module._execute_backup_wrapper()

        mock_run_backup.assert_called_once()
