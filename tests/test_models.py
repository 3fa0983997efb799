from models import Order, OrderItem, Product, ProductImage, ProductVariant, User


def make_product():
    product = Product(title="Drill", handle="drill", vendor="Acme", product_type="Tools", status="active")
    product.variants = [
        ProductVariant(title="Bare", sku="A", price=10.0, inventory_quantity=0),
        ProductVariant(title="Kit", sku="B", price=25.0, inventory_quantity=4),
    ]
    product.images = [
        ProductImage(url="https://img.example.com/2.jpg", position=2),
        ProductImage(url="https://img.example.com/1.jpg", position=1),
    ]
    return product


def test_user_properties():
    user = User(email="a@example.com", first_name="Ann", last_name="Lee", role="admin", status="active")
    assert user.full_name == "Ann Lee"
    assert user.is_admin
    assert user.is_active
    assert not user.is_wholesale

    user.status = "suspended"
    user.role = "retail"
    assert not user.is_active
    assert user.is_retail


def test_product_prices_and_inventory():
    product = make_product()
    assert product.min_price == 10.0
    assert product.max_price == 25.0
    assert product.total_inventory == 4
    assert product.is_available
    assert product.main_image.position == 1


def test_product_variant_lookup():
    product = make_product()
    assert product.has_variant("B")
    assert not product.has_variant("Z")
    assert product.is_in_stock("B")
    assert not product.is_in_stock("A")
    assert product.get_variant("Z") is None


def test_product_without_variants():
    product = Product(title="Empty", handle="empty", vendor="Acme", product_type="Tools")
    assert product.min_price == 0.0
    assert product.max_price == 0.0
    assert product.total_inventory == 0
    assert not product.is_available
    assert product.main_image is None


def test_adjust_inventory_floors_at_zero():
    variant = ProductVariant(title="Bare", sku="A", price=10.0, inventory_quantity=3)
    assert variant.adjust_inventory(-10) == 0
    assert variant.adjust_inventory(5) == 5
    assert variant.adjust_inventory(-2) == 3
    assert variant.is_available


def test_order_state_helpers():
    order = Order(status="pending")
    order.items = [
        OrderItem(sku="A", quantity=2, unit_price=5.0, total_price=10.0),
        OrderItem(sku="B", quantity=3, unit_price=1.0, total_price=3.0),
    ]
    assert order.total_items == 5
    assert order.can_be_cancelled
    assert not order.can_be_shipped
    assert not order.is_shipped

    order.status = "processing"
    order.tracking_number = "1Z"
    assert not order.can_be_cancelled
    assert order.can_be_shipped
    assert order.is_shipped

    order.status = "cancelled"
    assert order.is_cancelled
    assert not order.is_delivered
