from app.farmbook import create_app

app = create_app()
