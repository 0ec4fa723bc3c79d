import json
from decimal import Decimal

from storefront.core.storage import CART_KEY
from storefront.schemas.product import Product
from storefront.services.cart import NAME_LIMIT, STORAGE_BUDGET, CartStore


def test_add_same_product_twice_merges_line(storage, st25):
    cart = CartStore(storage)

    assert cart.add_item(st25, 1)
    assert cart.add_item(st25, 2)

    assert len(cart.items) == 1
    assert cart.items[0].quantity == 3


def test_numeric_and_string_ids_are_the_same_product(storage):
    cart = CartStore(storage)
    cart.add_item({"id": 7, "name": "Gạo Nàng Hoa", "listedPrice": 150000})
    cart.add_item({"_id": "7", "name": "Gạo Nàng Hoa", "listedPrice": 150000})

    assert len(cart.items) == 1
    assert cart.items[0].quantity == 2

    cart.update_quantity(7, 5)
    assert cart.items[0].quantity == 5


def test_total_and_count(storage, st25):
    cart = CartStore(storage)
    cart.add_item(st25, 2)

    assert cart.get_total() == Decimal("400000")
    assert cart.get_count() == 2


def test_discounted_unit_price_used_in_total(storage):
    cart = CartStore(storage)
    cart.add_item({"_id": "B", "name": "Gạo lứt", "listedPrice": 100000, "discountPercent": 10}, 3)

    assert cart.items[0].product.unit_price == Decimal("90000")
    assert cart.get_total() == Decimal("270000")


def test_legacy_price_pair_derives_discount():
    product = Product.from_catalog({"_id": "C", "price": 90000, "originalPrice": 100000})

    assert product.listed_price == Decimal("100000")
    assert product.unit_price == Decimal("90000")


def test_add_without_id_is_rejected_without_mutation(storage):
    cart = CartStore(storage)

    assert cart.add_item({"name": "Không có mã", "listedPrice": 1000}) is False
    assert cart.is_empty
    assert CART_KEY not in storage


def test_add_zero_quantity_is_rejected(storage, st25):
    cart = CartStore(storage)

    assert cart.add_item(st25, 0) is False
    assert cart.is_empty


def test_update_to_zero_removes_line(storage, st25):
    cart = CartStore(storage)
    cart.add_item(st25, 2)

    cart.update_quantity("A", 0)

    assert cart.is_empty
    assert json.loads(storage[CART_KEY]) == []


def test_remove_missing_product_is_noop(storage, st25):
    cart = CartStore(storage)
    cart.add_item(st25, 1)
    saved = storage[CART_KEY]

    cart.remove_item("does-not-exist")

    assert storage[CART_KEY] == saved
    assert cart.get_count() == 1


def test_cart_survives_reload(storage, st25):
    cart = CartStore(storage)
    cart.add_item(st25, 2)
    cart.add_item({"_id": "B", "name": "Gạo lứt", "listedPrice": 100000, "discountPercent": 10}, 1)

    reloaded = CartStore(storage)

    assert [(item.product.product_id, item.quantity) for item in reloaded.items] == [("A", 2), ("B", 1)]
    assert reloaded.get_total() == Decimal("490000")
    assert reloaded.items[0].product.name == "Gạo ST25"


def test_stored_rows_keep_only_id_quantity_price_and_name(storage, st25):
    CartStore(storage).add_item(st25, 2)
    CartStore(storage).add_item({"_id": "B", "name": "Gạo lứt", "listedPrice": "99500.5", "discountPercent": 12.5})

    saved = json.loads(storage[CART_KEY])

    assert saved == [["A", 2, 200000, 0, "Gạo ST25"], ["B", 1, "99500.5", "12.5", "Gạo lứt"]]
    assert "st25.jpg" not in storage[CART_KEY]


def test_long_names_are_truncated_in_storage(storage):
    CartStore(storage).add_item({"_id": "A", "name": "Gạo " * 40, "listedPrice": 1000})

    assert len(json.loads(storage[CART_KEY])[0][4]) == NAME_LIMIT


def test_large_cart_shortens_names_to_fit_storage(storage):
    cart = CartStore(storage)
    for n in range(20):
        cart.add_item({
            "_id": f"65f1c2a9e4b0a1d2c3e4{n:04x}",
            "name": f"Gạo Séng Cù Điện Biên thượng hạng đóng túi hút chân không {n}",
            "images": [f"https://cdn.huonggaoque.vn/products/{n}/anh-chinh-kich-thuoc-lon.jpg"],
            "listedPrice": 185000,
            "discountPercent": 10,
        }, 2)

    rows = json.loads(storage[CART_KEY])
    assert len(json.dumps(rows, separators=(",", ":"))) <= STORAGE_BUDGET
    assert len(rows) == 20
    assert all(0 < len(row[4]) < NAME_LIMIT for row in rows)

    reloaded = CartStore(storage)
    assert reloaded.get_count() == 40
    assert reloaded.items[0].product.name == cart.items[0].product.name[:len(rows[0][4])]
    assert reloaded.get_total() == cart.get_total()


def test_older_product_objects_still_load(storage, st25):
    storage[CART_KEY] = json.dumps([{"product": st25, "quantity": 2}])

    cart = CartStore(storage)

    assert cart.get_total() == Decimal("400000")
    assert cart.items[0].product.name == "Gạo ST25"


def test_panel_opens_on_add_but_is_not_persisted(storage, st25):
    cart = CartStore(storage)
    assert cart.is_cart_panel_open is False

    cart.add_item(st25)
    assert cart.is_cart_panel_open is True
    assert CartStore(storage).is_cart_panel_open is False

    cart.close_panel()
    assert cart.is_cart_panel_open is False


def test_malformed_storage_yields_empty_cart(storage):
    storage[CART_KEY] = "{not json"
    assert CartStore(storage).is_empty

    storage[CART_KEY] = json.dumps({"product": "A"})
    assert CartStore(storage).is_empty


def test_unreadable_entries_are_dropped(storage, st25):
    storage[CART_KEY] = json.dumps([
        {"product": st25, "quantity": 1},
        {"product": {"name": "no id"}, "quantity": 1},
        {"product": st25, "quantity": 4},
        {"quantity": 2},
        {"product": {"_id": "B", "listedPrice": 1000}, "quantity": 0},
        {"product": None, "quantity": 1},
        {"product": "A", "quantity": 1},
        {"product": ["A"], "quantity": 1},
        None,
        "A",
        ["C", 1],
        ["D", "many", 1000, 0, "Gạo"],
    ])

    cart = CartStore(storage)

    assert len(cart.items) == 1
    assert cart.items[0].quantity == 1


def test_clear_empties_storage(storage, st25):
    cart = CartStore(storage)
    cart.add_item(st25, 2)

    cart.clear()

    assert cart.is_empty
    assert CartStore(storage).is_empty


def test_to_response(storage, st25):
    cart = CartStore(storage)
    cart.add_item(st25, 2)

    response = cart.to_response()

    assert response.count == 2
    assert response.total == Decimal("400000")
    assert response.items[0].line_total == Decimal("400000")
    assert response.is_cart_panel_open is True
    assert response.error is None


def test_add_non_object_product_is_rejected(storage):
    cart = CartStore(storage)

    assert cart.add_item(None) is False
    assert cart.add_item("A") is False
    assert cart.is_empty


def test_zero_is_a_valid_product_id(storage):
    cart = CartStore(storage)

    assert cart.add_item({"id": 0, "_id": None, "name": "Gạo mẫu", "listedPrice": 1000})
    assert cart.items[0].product.product_id == "0"
    assert CartStore(storage).items[0].product.product_id == "0"
