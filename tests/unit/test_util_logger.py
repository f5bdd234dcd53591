"""
Component loggers and execution-scoped context.
"""

import logging

from util_logger import ComponentType, LoggerFactory


class TestContextLogger:

    def test_contexts_share_one_component_logger(self):
        LoggerFactory.create_with_context(ComponentType.WORKER, "ExecutionSupervisor", execution_id="warmup")
        registered = len(logging.Logger.manager.loggerDict)

        adapters = [
            LoggerFactory.create_with_context(
                ComponentType.WORKER, "ExecutionSupervisor", dataset_id=f"d{i}", execution_id=f"e{i}"
            )
            for i in range(20)
        ]

        assert len(logging.Logger.manager.loggerDict) == registered
        assert {adapter.logger.name for adapter in adapters} == {"worker.ExecutionSupervisor"}
        assert len(adapters[0].logger.handlers) == 1

    def test_ids_reach_the_record(self, caplog):
        log = LoggerFactory.create_with_context(
            ComponentType.WORKER, "ExecutionSupervisor", dataset_id="d1", execution_id="e1"
        )

        with caplog.at_level(logging.INFO, logger="worker.ExecutionSupervisor"):
            log.info("started", extra={"custom_dimensions": {"plugin_type": "OAIPMH_HARVEST"}})

        record = caplog.records[-1]
        assert record.custom_dimensions["dataset_id"] == "d1"
        assert record.custom_dimensions["execution_id"] == "e1"
        assert record.custom_dimensions["plugin_type"] == "OAIPMH_HARVEST"
        assert record.custom_dimensions["component_name"] == "ExecutionSupervisor"

    def test_contexts_do_not_leak_between_executions(self, caplog):
        first = LoggerFactory.create_with_context(ComponentType.WORKER, "ExecutionSupervisor", execution_id="e1")
        second = LoggerFactory.create_with_context(ComponentType.WORKER, "ExecutionSupervisor", execution_id="e2")

        with caplog.at_level(logging.INFO, logger="worker.ExecutionSupervisor"):
            first.info("one")
            second.info("two")

        assert [r.custom_dimensions["execution_id"] for r in caplog.records[-2:]] == ["e1", "e2"]
