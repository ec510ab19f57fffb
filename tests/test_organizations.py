import pytest

from errors import NotFoundError, ValidationError


def test_create_defaults(organizations, org):
    assert org.name == "Demo Fitness"
    assert org.currency == "VND"
    assert org.session_default_length_minutes == 60
    assert organizations.get_user_role(1, org.id) == "owner"


def test_create_requires_name(organizations):
    with pytest.raises(ValidationError):
        organizations.create("  ", 1)


def test_add_user_and_roles(organizations, org):
    organizations.add_user(5, org.id, "admin")
    assert organizations.get_user_role(5, org.id) == "admin"
    assert organizations.get_user_role(6, org.id) is None

    with pytest.raises(ValidationError):
        organizations.add_user(6, org.id, "superuser")
    with pytest.raises(NotFoundError):
        organizations.add_user(6, 999)


def test_update_name(organizations, org):
    assert organizations.update(org.id, "Renamed Gym").name == "Renamed Gym"
    with pytest.raises(NotFoundError):
        organizations.update(999, "Nope")


def test_update_settings_partial(organizations, org):
    updated = organizations.update_settings(org.id, currency="USD")
    assert updated.currency == "USD"
    assert updated.session_default_length_minutes == 60

    updated = organizations.update_settings(org.id, session_default_length_minutes=45)
    assert updated.currency == "USD"
    assert updated.session_default_length_minutes == 45


@pytest.mark.parametrize("kwargs", [{"currency": "XYZ"}, {"session_default_length_minutes": 0}])
def test_update_settings_validation(organizations, org, kwargs):
    with pytest.raises(ValidationError):
        organizations.update_settings(org.id, **kwargs)


def test_update_settings_missing(organizations):
    with pytest.raises(NotFoundError):
        organizations.update_settings(999, currency="USD")
