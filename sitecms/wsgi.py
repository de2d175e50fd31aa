from sitecms import create_app

app = create_app()
