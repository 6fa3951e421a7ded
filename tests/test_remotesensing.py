import pytest

from atet import remotesensing
from atet.remotesensing import (
    check_task_status, wait_for_tasks, load_asset, materialize_image,
    materialize_table, export_table_to_drive, projection_info
)


class _FakeTask:
    """Stand-in for ee.batch.Task replaying a list of states."""

    def __init__(self, *states):
        self.states = list(states)

    def status(self):
        state = self.states.pop(0) if len(self.states) > 1 else self.states[0]
        return {'state': state}


def test_check_task_status_splits_finished_tasks():
    tasks = [(_FakeTask('RUNNING'), 'broadATE'), (_FakeTask('COMPLETED'), 'medialAxis')]

    active, finished = check_task_status(tasks)

    assert [name for _, name in active] == ['broadATE']
    assert finished == {'medialAxis': 'COMPLETED'}


def test_wait_for_tasks_polls_until_done():
    tasks = [(_FakeTask('READY', 'RUNNING', 'COMPLETED'), 'centerlines'),
             (None, 'skipped')]

    states = wait_for_tasks(tasks, poll_interval=0)

    assert states == {'centerlines': 'COMPLETED'}


def test_wait_for_tasks_raises_on_failure():
    tasks = [(_FakeTask('COMPLETED'), 'groups'), (_FakeTask('RUNNING', 'FAILED'), 'segments')]

    with pytest.raises(RuntimeError, match='segments'):
        wait_for_tasks(tasks, poll_interval=0)


def test_disabled_exports_return_inputs():
    assert not remotesensing.EXPORT_RESULTS

    graph = object()
    assert materialize_image(graph, 'broadATE', region=None) is graph
    assert materialize_table(graph, 'steepestCenterlines') is graph
    assert export_table_to_drive(graph, 'steepestCenterlines', 'ATET_Export') is None


def test_load_asset_rejects_unknown_kind():
    with pytest.raises(ValueError):
        load_asset('broadATE', kind='raster')


def test_projection_info():
    assert projection_info(scale=90) == {'crs': 'EPSG:4326', 'scale': 90}
