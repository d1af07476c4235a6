"""
Backup and restore tests.

Verifies:
- A backup holds users, products, sales and settings, with images embedded
- Restoring replaces everything, moves images back to the blob store,
  and signs out a session whose user is gone
- A malformed document is refused before anything is written
"""

import json

import pytest

from lahemir.errors import InvalidBackupFormat
from lahemir.models import ROLE_ADMIN, ROLE_EMPLOYEE

from conftest import ADMIN_PASSWORD, ADMIN_USERNAME, make_product

PNG_DATA_URI = "data:image/png;base64,iVBORw0KGgo="


def _document(**overrides):
    doc = {
        "users": [{"id": "user_x", "username": "x", "password": "pw", "role": ROLE_ADMIN}],
        "products": [{
            "id": "prod_x", "name": "Restored", "price": 7.5, "quantity": 4,
            "createdAt": "2024-01-01T00:00:00.000Z", "updatedAt": "2024-01-01T00:00:00.000Z",
            "imageUrl": PNG_DATA_URI,
        }],
        "sales": [],
        "settings": {
            "storeName": "Restored Store",
            "themeColors": {"primary": "1 1% 1%", "background": "2 2% 2%", "accent": "3 3% 3%"},
        },
    }
    doc.update(overrides)
    return doc


class TestCreateBackup:

    def test_contains_all_sections(self, services, admin):
        widget = make_product(services, quantity=5, imageUrl=PNG_DATA_URI)
        services.sales.record_sale([(widget.id, 1)], 0, admin)

        backup = services.backup.create_backup()

        assert set(backup) == {"users", "products", "sales", "settings"}
        assert backup["users"][0]["password"] == ADMIN_PASSWORD
        assert backup["products"][0]["imageUrl"] == PNG_DATA_URI
        assert backup["sales"][0]["items"][0]["productId"] == widget.id
        assert backup["settings"]["storeName"] == services.settings.get().store_name

    def test_dumps_is_json(self, services):
        assert json.loads(services.backup.dumps())["products"] == []


class TestRestoreBackup:

    def test_replaces_everything(self, services):
        make_product(services, name="Old")

        summary = services.backup.restore_backup(_document())

        assert summary == {"users": 1, "products": 1, "sales": 0}
        assert [p.name for p in services.products.list()] == ["Restored"]
        assert services.products.get_by_id("prod_x").image_url == ""
        assert services.images.get_data_uri("prod_x") == PNG_DATA_URI
        assert [u.username for u in services.users.list()] == ["x"]
        assert services.settings.get().store_name == "Restored Store"

    def test_accepts_json_text(self, services):
        services.backup.restore_backup(json.dumps(_document()))
        assert services.products.get_by_id("prod_x").quantity == 4

    def test_round_trip(self, services, admin):
        widget = make_product(services, quantity=5, imageUrl=PNG_DATA_URI)
        services.sales.record_sale([(widget.id, 2)], 0, admin)
        backup = services.backup.dumps()

        services.backup.restore_backup(_document())
        services.backup.restore_backup(backup)

        assert services.products.get_by_id(widget.id).quantity == 3
        assert services.images.get_data_uri(widget.id) == PNG_DATA_URI
        assert len(services.sales.list()) == 1
        assert services.users.get_by_username(ADMIN_USERNAME) is not None

    def test_session_of_missing_user_is_signed_out(self, services):
        _, token = services.session.login(ADMIN_USERNAME, ADMIN_PASSWORD)

        services.backup.restore_backup(_document())

        assert services.session.current_user(token) is None
        assert services.session.slot.get() == []

    @pytest.mark.parametrize("missing", ["users", "products", "sales", "settings"])
    def test_missing_section_changes_nothing(self, services, missing):
        widget = make_product(services)
        doc = _document()
        del doc[missing]

        with pytest.raises(InvalidBackupFormat) as exc_info:
            services.backup.restore_backup(doc)

        assert exc_info.value.details == {"missing": [missing]}
        assert services.products.list() == [widget]
        assert services.users.get_by_username(ADMIN_USERNAME) is not None

    def test_bad_record_changes_nothing(self, services):
        widget = make_product(services)
        doc = _document(products=[{"id": "prod_bad", "name": "No price"}])

        with pytest.raises(InvalidBackupFormat):
            services.backup.restore_backup(doc)
        assert services.products.list() == [widget]

    @pytest.mark.parametrize("sale_date,accepted", [
        ("2024-01-01T10:00:00.000Z", True),
        ("yesterday", False),
        ("", False),
        ("2024-13-45T00:00:00Z", False),
    ])
    def test_sale_date_must_be_iso(self, services, sale_date, accepted):
        sale = {
            "id": "sale_x", "saleDate": sale_date, "sellerId": "user_x", "sellerUsername": "x",
            "originalTotalAmount": 7.5, "discountAmount": 0, "totalAmount": 7.5, "status": "active",
            "items": [{"productId": "prod_x", "productName": "Restored", "quantity": 1, "pricePerUnit": 7.5}],
        }

        if accepted:
            services.backup.restore_backup(_document(sales=[sale]))
            assert [s.sale_date for s in services.sales.list()] == [sale_date]
            return

        with pytest.raises(InvalidBackupFormat):
            services.backup.restore_backup(_document(sales=[sale]))
        assert services.sales.list() == []

    def test_users_without_admin_rejected(self, services, employee):
        doc = _document(users=[{"id": "user_e", "username": "e", "password": "pw", "role": ROLE_EMPLOYEE}])

        with pytest.raises(InvalidBackupFormat) as exc_info:
            services.backup.restore_backup(doc)

        assert exc_info.value.details == {"users": "no admin"}
        assert {u.username for u in services.users.list()} == {ADMIN_USERNAME, "sara"}
        assert services.products.list() == []
        assert services.users.authenticate(ADMIN_USERNAME, ADMIN_PASSWORD).is_admin

    @pytest.mark.parametrize("document", ["not json", "[]", {"users": {}, "products": [], "sales": [], "settings": {}}])
    def test_malformed_documents(self, services, document):
        with pytest.raises(InvalidBackupFormat):
            services.backup.restore_backup(document)
