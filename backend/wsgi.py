from labflow import create_app

app = create_app()
