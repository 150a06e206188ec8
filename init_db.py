from app import create_app
from models import db, Plan, Profile
from services.security import seed_global_profiles
from tier_config import seed_plans


def init_db(app=None):
    app = app or create_app()
    with app.app_context():
        # Create all tables
        db.create_all()

        try:
            print("Seeding plan catalog...")
            seed_plans()
            print("Seeding global profiles...")
            seed_global_profiles()
            print("Successfully initialized database!")
        except Exception as e:
            db.session.rollback()
            print(f"Error initializing database: {str(e)}")
            raise

        # Verify seed data
        print("\nCurrent plans in database:")
        for plan in Plan.query.order_by(Plan.sort_order).all():
            limits = plan.limits
            print(f"{plan.sort_order}: {plan.display_name} "
                  f"(lots={limits.lots}, users={limits.users}, extranet={limits.extranet_tenants})")

        print("\nGlobal profiles:")
        for profile in Profile.query.filter(Profile.organization_id.is_(None)).all():
            print(f"- {profile.name}")


if __name__ == '__main__':
    init_db()
