from dms.db.base import Base
from dms.db.session import engine
import dms.db.models  # noqa


def init_db():
    Base.metadata.create_all(bind=engine)


if __name__ == "__main__":
    init_db()
