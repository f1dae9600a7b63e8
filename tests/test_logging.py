from __future__ import annotations

import logging

from loan_reminder.logging import PACKAGE_LOGGER, get_logger


def test_module_loggers_share_package_handlers() -> None:
    first = get_logger("area-one")
    second = get_logger("area-two")
    get_logger("area-one")

    package = logging.getLogger(PACKAGE_LOGGER)
    assert first.name == "loan_reminder.area-one"
    assert first.handlers == [] and second.handlers == []
    assert first.parent is package
    assert len([h for h in package.handlers if type(h) is logging.StreamHandler]) == 1
    assert package.propagate is False
