from app.regdesk import create_app

app = create_app()
