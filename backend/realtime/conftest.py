import pytest


@pytest.fixture(autouse=True)
def _allow_channels_connection_cleanup(django_db_blocker):
	# channels' consumer dispatch calls close_old_connections(); Django's own
	# runner tolerates that in SimpleTestCase, pytest-django's blocker does not.
	with django_db_blocker.unblock():
		yield
