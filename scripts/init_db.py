from dotenv import load_dotenv
from sqlalchemy import inspect, text

from rasuva import create_app, db
from rasuva import models  # noqa: F401  (registers tables on db.metadata)

load_dotenv()
app = create_app()
with app.app_context():
    schema = app.config["RASUVA_DB_SCHEMA"]
    if schema and db.engine.dialect.name == "postgresql":
        # make sure the schema exists before the search_path points at it
        db.session.execute(text(f'create schema if not exists "{schema}"'))
        db.session.commit()

    db.create_all()

    print("Tables:", sorted(inspect(db.engine).get_table_names()))
