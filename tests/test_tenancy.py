import pytest

from models import db
from models.booking import Booking
from models.community import Community, COMMUNITY_INACTIVE
from models.slot import Slot
from models.user import User
from security.tenancy import (
    current_scope,
    known_tenants,
    resolve,
    tenant_scope,
    unscoped,
)
from tests.helpers import at, book, make_slot
from utils.errors import Forbidden, UnknownTenant, CROSS_TENANT_WRITE


@pytest.mark.parametrize("code", [None, "", "L", "LMRXX", "L1R", "ZZZ"])
def test_resolve_rejects_bad_codes(app, code):
    with app.app_context():
        with pytest.raises(UnknownTenant):
            resolve(code)


def test_resolve_normalizes_and_rejects_inactive(app):
    with app.app_context():
        assert resolve(" lmr ").code == "LMR"
        assert resolve("LMR").name == "Lumiere Residences"

        db.session.get(Community, "BGC").status = COMMUNITY_INACTIVE
        db.session.commit()
        with pytest.raises(UnknownTenant):
            resolve("BGC")
        assert [c.code for c in known_tenants()] == ["LMR"]


def test_unfiltered_reads_only_see_bound_tenant(app):
    lmr_slot = make_slot(app)
    bgc_slot = make_slot(app, owner="b-resident")
    book(app, "u-renter", lmr_slot, at(9), at(10))

    with app.app_context():
        with tenant_scope(resolve("LMR")):
            assert {s.id for s in Slot.query.all()} == {lmr_slot}
            assert {u.tenant_code for u in User.query.all()} == {"LMR"}
            assert db.session.get(Slot, bgc_slot) is None
            assert Booking.query.count() == 1

    with app.app_context():
        with tenant_scope(resolve("BGC")):
            assert {s.id for s in Slot.query.all()} == {bgc_slot}
            assert Booking.query.count() == 0
            # lazy loads stay inside the bound tenant
            owner = db.session.get(User, "b-resident")
            assert [s.id for s in owner.slots] == [bgc_slot]


def test_system_reads_may_skip_scope(app):
    make_slot(app)
    make_slot(app, owner="b-resident")
    with app.app_context():
        with tenant_scope(resolve("LMR")):
            with unscoped():
                rows = Slot.query.all()
            assert {s.tenant_code for s in rows} == {"LMR", "BGC"}
            assert {s.tenant_code for s in Slot.query.all()} == {"LMR"}


def test_cross_tenant_write_refused(app):
    with app.app_context():
        with tenant_scope(resolve("LMR")):
            db.session.add(Slot(
                owner_id="b-resident", tenant_code="BGC",
                location_level="B1", location_tower="T1",
            ))
            with pytest.raises(Forbidden) as err:
                db.session.flush()
            assert err.value.reason == CROSS_TENANT_WRITE
            db.session.rollback()

    with app.app_context():
        assert Slot.query.count() == 0


def test_scope_nesting_restores_previous(app):
    with app.app_context():
        assert current_scope() is None
        with tenant_scope(resolve("LMR")):
            with tenant_scope(resolve("BGC")):
                assert current_scope().code == "BGC"
            assert current_scope().code == "LMR"
        assert current_scope() is None
