import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from app.config import settings

logger = logging.getLogger(__name__)

SQLALCHEMY_DATABASE_URL = settings.DATABASE_URL

connect_args = {"check_same_thread": False} if SQLALCHEMY_DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db():
    # Import models here to create tables
    from app.models import User, ExpertProfile, AvailabilitySlot
    from app.scheduling import generate_slots
    Base.metadata.create_all(bind=engine)

    # Seed minimal data if empty
    from sqlalchemy.orm import Session
    db: Session = SessionLocal()
    try:
        # Create a demo customer, expert and a week of slots if none
        if not db.query(User).first():
            db.add(User(id="u-demo", full_name="Demo Customer", email="demo@example.com", role="customer"))
            db.add(User(id="u-expert", full_name="Demo Expert", email="expert@example.com", role="expert"))
            db.flush()
        if not db.query(ExpertProfile).first():
            profile = ExpertProfile(
                id="e-demo",
                user_id="u-expert",
                title="Senior Software Engineer",
                description="Helps teams build scalable web applications.",
                expertise_areas=["Python", "FastAPI", "SQL"],
                hourly_rate=120,
            )
            db.add(profile)
            db.flush()
        else:
            profile = db.query(ExpertProfile).first()
        if not db.query(AvailabilitySlot).first():
            from datetime import date, time, timedelta
            tomorrow = date.today() + timedelta(days=1)
            generated = generate_slots(
                tomorrow, time(9, 0), time(12, 0), 60,
                weekdays=settings.BUSINESS_DAYS, weeks=1,
            )
            db.add_all([
                AvailabilitySlot(expert_id=profile.id, start_time=start, end_time=end, is_booked=False)
                for start, end in generated
            ])
            logger.info("Seeded %d availability slots for %s", len(generated), profile.id)
        db.commit()
    finally:
        db.close()
