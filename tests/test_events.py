"""Tests for the event dispatcher"""

import logging

from orgtree.events import EventDispatcher, OrganizationCreated, OrganizationDeleted


class TestEventDispatcher:
    """Test suite for EventDispatcher"""

    def test_dispatch_by_type(self):
        dispatcher = EventDispatcher()
        created, deleted = [], []
        dispatcher.subscribe(OrganizationCreated, created.append)
        dispatcher.subscribe(OrganizationDeleted, deleted.append)

        dispatcher.dispatch(OrganizationCreated(organization="org"))

        assert len(created) == 1
        assert deleted == []

    def test_no_handlers(self):
        EventDispatcher().dispatch(OrganizationDeleted(organization="org"))

    def test_failing_handler_isolated(self, caplog):
        """Test one failing handler neither raises nor stops the others"""
        dispatcher = EventDispatcher()
        received = []

        def failing(event):
            raise ValueError("boom")

        dispatcher.subscribe(OrganizationCreated, failing)
        dispatcher.subscribe(OrganizationCreated, received.append)

        with caplog.at_level(logging.ERROR, logger="orgtree.events"):
            dispatcher.dispatch(OrganizationCreated(organization="org"))

        assert len(received) == 1
        assert "failing" in caplog.text
