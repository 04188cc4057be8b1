import sqlalchemy as sa
import sqlalchemy.orm as so
from fitgym import create_app, db
from fitgym.models import Member, Role
import os

app = create_app(os.getenv('FLASK_CONFIG') or 'development')

@app.shell_context_processor
def make_shell_context():
    return {
        'sa': sa,
        'so': so,
        'db': db,
        'Member': Member,
        'Role': Role,
    }

if __name__ == '__main__':
    app.run(debug=True)
