"""
Tests for the logging module.
"""

import time

import pytest

from deal_sync.logging import (
    PipelineTimer,
    add_context_info,
    current_context,
    logging_context,
)


class TestLoggingContext:
    """Test logging context management."""

    def test_logging_context_sets_values(self):
        with logging_context(trace_id='trace_123', pipeline_id='default', deal_id='1001'):
            assert current_context() == {
                'trace_id': 'trace_123',
                'pipeline_id': 'default',
                'deal_id': '1001',
            }

    def test_logging_context_restores_values(self):
        with logging_context(trace_id='outer'):
            with logging_context(trace_id='inner'):
                assert current_context()['trace_id'] == 'inner'
            assert current_context()['trace_id'] == 'outer'

        assert current_context() == {}

    def test_logging_context_partial_values(self):
        with logging_context(pipeline_id='renewals', deal_id=None):
            assert current_context() == {'pipeline_id': 'renewals'}

    def test_unknown_key_rejected(self):
        with pytest.raises(TypeError):
            with logging_context(tenant_id='t1'):
                pass

    def test_processor_adds_context(self):
        with logging_context(trace_id='t1', deal_id='d1'):
            event = add_context_info(None, 'info', {'event': 'x'})

        assert event == {'event': 'x', 'trace_id': 't1', 'deal_id': 'd1'}


class TestPipelineTimer:
    """Test stage timing."""

    def test_timer_records_stages(self):
        timer = PipelineTimer()

        with timer.stage('resolve_stages'):
            time.sleep(0.01)
        with timer.stage('fetch_deals'):
            pass

        assert set(timer.stages) == {'resolve_stages', 'fetch_deals'}
        assert timer.stages['resolve_stages'] >= 5

    def test_timer_records_on_error(self):
        timer = PipelineTimer()

        try:
            with timer.stage('upsert'):
                raise RuntimeError('boom')
        except RuntimeError:
            pass

        assert 'upsert' in timer.stages

    def test_summary_rounds_stage_timings(self):
        timer = PipelineTimer()
        with timer.stage('normalize'):
            pass

        summary = timer.summary()
        assert set(summary['stages']) == {'normalize'}
        assert summary['stages']['normalize'] == round(timer.stages['normalize'], 2)
        assert summary['total_ms'] >= summary['stages']['normalize']
