from app import create_app
from models import db
from models.user import User, Role
from services.orders import create_local_order


def run():
    app = create_app()
    with app.app_context():
        # ✅ Importante:
        # No usamos db.create_all() porque trabajamos con migraciones (Flask-Migrate).
        # Asegúrate de haber corrido: flask db upgrade

        # 1) Usuario owner demo
        user = db.session.query(User).filter_by(email="owner@demo.com").first()
        if not user:
            user = User(email="owner@demo.com", full_name="Owner Demo", role=Role.OWNER, is_active=True)
            user.set_password("owner1234")
            db.session.add(user)
        else:
            user.is_active = True
            user.role = Role.OWNER

        # 2) Cajero demo
        cashier = db.session.query(User).filter_by(email="kasir@demo.com").first()
        if not cashier:
            cashier = User(email="kasir@demo.com", full_name="Kasir Demo", role=Role.CASHIER, is_active=True)
            cashier.set_password("kasir1234")
            db.session.add(cashier)

        # 3) Una orden offline pendiente de sincronizar
        create_local_order(
            db.session,
            machine_id=app.config["MACHINE_ID"],
            data={
                "customer": {"name": "Budi", "phone": "08123456789"},
                "items": [
                    {
                        "product_name": "Banner Flexi 280g",
                        "pricing_type": "AREA",
                        "qty": 1,
                        "unit_price": 75000,
                        "specs": {"dimensions": {"length": 2.5, "width": 1.5}, "finishings": ["Mata Ayam"]},
                    },
                    {"product_name": "Kartu Nama", "pricing_type": "UNIT", "qty": 2, "unit_price": 35000},
                ],
                "paid_amount": 50000,
                "received_by": "Kasir Demo",
            },
        )

        db.session.commit()

        print("✅ Seed listo.")
        print("Login: owner@demo.com / owner1234 (OWNER)")
        print("Login: kasir@demo.com / kasir1234 (CASHIER)")
        print("1 orden PENDING creada; corre: flask sync-once")


if __name__ == "__main__":
    run()
