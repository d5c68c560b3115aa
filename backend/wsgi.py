from fleetstock import create_app

app = create_app()
