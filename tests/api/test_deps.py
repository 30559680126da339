from prepfire.api import deps
from prepfire.db import session as db_session


def test_get_db_closes_session(mocker):
    fake = mocker.MagicMock()
    mocker.patch.object(deps, "SessionLocal", return_value=fake)

    dependency = deps.get_db()
    assert next(dependency) is fake
    dependency.close()

    fake.close.assert_called_once()


def test_session_module_has_single_db_dependency():
    assert not hasattr(db_session, "get_db")
