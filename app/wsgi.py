from app.accrediflow import create_app

app = create_app()
