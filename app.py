import os
import logging
from datetime import datetime
from functools import wraps
from flask import Blueprint, Flask, current_app, render_template, request, redirect, url_for, session, jsonify, flash
from pydantic import ValidationError
from werkzeug.security import generate_password_hash, check_password_hash
from models import db, User, Profile, TRANSACTION_TYPES
from ledger.errors import BudgetError, InvalidCycleError, InvalidEditError, RolloverConflictError, StoreError, TransactionNotFound
from ledger.periods import today_cycle
from ledger.purchases import PAGES, add_transaction as add_entry, delete_transaction as delete_entry, \
    edit_transaction as edit_entry, reset_transactions, transactions_for_page
from ledger.records import ProfileInput, TransactionEdit, TransactionInput
from ledger.reports import cycle_history, upcoming_commitments
from ledger.rollover import IncomeChoice, apply_profile_patch, cycle_totals, roll_cycle
from ledger.store import Eq, InCycle, RecordStore

logging.basicConfig(level=logging.INFO)

bp = Blueprint('main', __name__)


def create_app(test_config=None):
    app = Flask(__name__, template_folder='templates', static_folder='static')
    app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///budget.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key-change-me')
    app.config['DEFAULT_IDEAL_DAY'] = int(os.environ.get('DEFAULT_IDEAL_DAY', 5))
    if test_config:
        app.config.update(test_config)
    db.init_app(app)
    app.register_blueprint(bp)
    with app.app_context():
        db.create_all()
    return app

# ---------------------- Auth Helpers ----------------------
def current_user():
    uid = session.get('user_id')
    if uid:
        return db.session.get(User, uid)
    return None

def login_required(view_func):
    @wraps(view_func)
    def wrapped(*args, **kwargs):
        if not current_user():
            return redirect(url_for('main.login', next=request.path))
        return view_func(*args, **kwargs)
    return wrapped

def _store():
    return RecordStore(db.session)

def _profile():
    return _store().get_profile(session['user_id'])

def _form_values(*keys):
    """Non-empty form fields, so optional model fields fall back to their defaults."""
    return {k: request.form[k].strip() for k in keys if request.form.get(k, '').strip() != ''}

def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    field = '.'.join(str(p) for p in err.get('loc', ()))
    return f"{field}: {err['msg']}" if field else err['msg']

# ---------------------- Routes: Auth ----------------------
@bp.route('/register', methods=['GET', 'POST'])
def register():
    if request.method == 'POST':
        name = request.form.get('name', '').strip()
        email = request.form.get('email', '').lower().strip()
        password = request.form.get('password', '')
        if not name or not email or not password:
            flash('All fields are required.', 'error')
            return render_template('register.html')
        if User.query.filter_by(email=email).first():
            flash('Email already registered.', 'error')
            return render_template('register.html')
        user = User(name=name, email=email, password_hash=generate_password_hash(password))
        user.profile = Profile(
            username=name,
            current_cycle=today_cycle(),
            ideal_day=current_app.config['DEFAULT_IDEAL_DAY'],
            total_saved=0.0,
            initial_income=0.0,
            monthly_salary=0.0,
        )
        db.session.add(user)
        db.session.commit()
        current_app.logger.info(f'Registered user {user.id} starting at cycle {user.profile.current_cycle}')
        flash('Registration successful. Please log in.', 'success')
        return redirect(url_for('main.login'))
    return render_template('register.html')

@bp.route('/login', methods=['GET', 'POST'])
def login():
    if request.method == 'POST':
        email = request.form.get('email', '').lower().strip()
        password = request.form.get('password', '')
        user = User.query.filter_by(email=email).first()
        if not user or not check_password_hash(user.password_hash, password):
            flash('Invalid credentials.', 'error')
            return render_template('login.html')
        session['user_id'] = user.id
        flash('Welcome back!', 'success')
        next_url = request.args.get('next') or url_for('main.dashboard')
        return redirect(next_url)
    return render_template('login.html')

@bp.route('/logout')
def logout():
    session.clear()
    flash('Logged out.', 'success')
    return redirect(url_for('main.login'))

# ---------------------- Routes: Profile ----------------------
def _apply_profile_form():
    """Validate the profile form and persist it. Returns the updated profile."""
    data = ProfileInput(**_form_values('current_cycle', 'ideal_day', 'initial_income', 'monthly_salary'))
    return apply_profile_patch(_store(), session['user_id'], data.model_dump(exclude_none=True))

@bp.route('/setup', methods=['GET', 'POST'])
@login_required
def setup():
    if request.method == 'POST':
        try:
            _apply_profile_form()
        except ValidationError as e:
            flash(f'Invalid value: {_first_error(e)}', 'error')
            return render_template('setup.html', profile=_profile())
        except StoreError:
            flash('Could not save your settings. Try again.', 'error')
            return render_template('setup.html', profile=_profile())
        flash('Initial setup completed!', 'success')
        return redirect(url_for('main.dashboard'))
    return render_template('setup.html', profile=_profile())

@bp.route('/profile', methods=['POST'])
@login_required
def update_profile():
    try:
        profile = _apply_profile_form()
    except ValidationError as e:
        return jsonify({'success': False, 'message': _first_error(e)})
    except StoreError:
        return jsonify({'success': False, 'message': 'Could not save your settings.'})
    return jsonify({'success': True, 'message': 'Profile updated.', 'profile': profile.to_dict()})

# ---------------------- Routes: Pages ----------------------
@bp.route('/')
@login_required
def dashboard():
    profile = _profile()
    current = _store().transactions(profile.user_id, InCycle('date', profile.current_cycle))
    totals = cycle_totals(current, profile.current_cycle, profile.initial_income)
    return render_template('dashboard.html', user=current_user(), profile=profile, totals=totals,
                           transactions=current, datetime=datetime)

@bp.route('/transactions/add', methods=['GET', 'POST'])
@login_required
def add_transaction():
    if request.method == 'POST':
        profile = _profile()
        try:
            data = TransactionInput(**_form_values('type', 'description', 'amount', 'is_recurrent',
                                                   'installments', 'ideal_day'))
        except ValidationError as e:
            flash(f'Fill in all fields correctly ({_first_error(e)}).', 'error')
            return render_template('add_transaction.html', profile=profile)
        try:
            created = add_entry(_store(), profile, data)
        except StoreError:
            flash('Could not add the transaction.', 'error')
            return render_template('add_transaction.html', profile=profile)
        flash('Transaction added.' if len(created) == 1 else f'Purchase added in {len(created)} installments.',
              'success')
        return redirect(url_for('main.dashboard'))
    return render_template('add_transaction.html', profile=_profile())

@bp.route('/transactions/<int:txn_id>/edit', methods=['GET', 'POST'])
@login_required
def edit_transaction(txn_id):
    store = _store()
    try:
        txn = store.get_transaction(session['user_id'], txn_id)
    except TransactionNotFound:
        flash('Transaction not found.', 'error')
        return redirect(url_for('main.dashboard'))
    if request.method == 'POST':
        try:
            data = TransactionEdit(**_form_values('description', 'amount', 'installments'))
        except ValidationError as e:
            flash(f'Fill in all fields correctly ({_first_error(e)}).', 'error')
            return render_template('edit_transaction.html', txn=txn)
        try:
            edit_entry(store, txn.user_id, txn.id, data.description, data.amount, data.installments)
        except InvalidEditError as e:
            flash(str(e), 'error')
            return render_template('edit_transaction.html', txn=txn)
        except StoreError:
            flash('Could not update the transaction.', 'error')
            return render_template('edit_transaction.html', txn=txn)
        flash('Transaction updated.', 'success')
        return redirect(url_for('main.dashboard'))
    return render_template('edit_transaction.html', txn=txn)

# ---------------------- Delete / Reset ----------------------
@bp.route('/transactions/delete/<int:txn_id>', methods=['POST'])
@login_required
def delete_transaction(txn_id):
    try:
        count = delete_entry(_store(), session['user_id'], txn_id)
    except TransactionNotFound:
        return jsonify({'success': False, 'message': 'Transaction not found.'})
    except StoreError:
        return jsonify({'success': False, 'message': 'Could not delete the transaction.'})
    return jsonify({'success': True, 'message': f'Deleted {count} transaction(s).', 'deleted': count})

@bp.route('/transactions/reset', methods=['POST'])
@login_required
def reset():
    ttype = request.form.get('type', '')
    if ttype not in TRANSACTION_TYPES:
        return jsonify({'success': False, 'message': f'Type must be one of: {", ".join(TRANSACTION_TYPES)}.'})
    try:
        count = reset_transactions(_store(), session['user_id'], ttype)
    except StoreError:
        return jsonify({'success': False, 'message': 'Could not delete the transactions.'})
    return jsonify({'success': True, 'message': f'Deleted {count} {ttype} transactions.', 'deleted': count})

# ---------------------- New Cycle ----------------------
@bp.route('/cycle/new', methods=['POST'])
@login_required
def new_cycle():
    try:
        choice = IncomeChoice(request.form.get('income_choice', IncomeChoice.NONE.value))
    except ValueError:
        return jsonify({'success': False, 'message': 'Unknown income choice.'})
    try:
        plan = roll_cycle(_store(), session['user_id'], choice)
    except RolloverConflictError:
        return jsonify({'success': False, 'message': 'The cycle was already advanced. Reload and try again.'})
    except BudgetError as e:
        current_app.logger.exception(f'Rollover failed: {e}')
        return jsonify({'success': False, 'message': 'Could not start the new cycle. Nothing was changed.'})
    return jsonify({
        'success': True,
        'message': f'New cycle {plan.new_cycle} started.',
        'cycle': plan.new_cycle,
        'saved': round(max(plan.available_balance, 0.0), 2),
        'total_saved': plan.total_saved,
        'removed': len(plan.delete_ids),
        'carried': len(plan.inserts),
    })

# ---------------------- API Endpoints ----------------------
@bp.route('/api/summary')
@login_required
def api_summary():
    profile = _profile()
    cycle = request.args.get('cycle') or profile.current_cycle
    try:
        current = _store().transactions(profile.user_id, InCycle('date', cycle))
    except InvalidCycleError as e:
        return jsonify({'success': False, 'message': str(e)}), 400
    base = profile.initial_income if cycle == profile.current_cycle else 0.0
    totals = cycle_totals(current, cycle, base)
    return jsonify({**totals.to_dict(), 'total_saved': profile.total_saved, 'profile': profile.to_dict()})

@bp.route('/api/transactions')
@login_required
def api_transactions():
    """Return the user's transactions for one page of the app, or one cycle."""
    store = _store()
    uid = session['user_id']
    page = request.args.get('page')
    cycle = request.args.get('cycle')
    try:
        if page:
            if page not in PAGES:
                return jsonify({'success': False, 'message': f'Unknown page {page}.'}), 400
            txs = transactions_for_page(store, uid, page)
        elif cycle:
            txs = store.transactions(uid, InCycle('date', cycle))
        else:
            txs = store.transactions(uid, order_by=('-date', '-id'))
    except InvalidCycleError as e:
        return jsonify({'success': False, 'message': str(e)}), 400
    return jsonify([t.to_dict() for t in txs])

@bp.route('/api/history')
@login_required
def api_history():
    hist = cycle_history(_store().transactions(session['user_id']))
    return jsonify([{'cycle': cycle, **{k: float(v) for k, v in row.items()}} for cycle, row in hist.iterrows()])

@bp.route('/api/commitments')
@login_required
def api_commitments():
    profile = _profile()
    card = _store().transactions(profile.user_id, Eq('type', 'card'))
    upcoming = upcoming_commitments(card, profile.current_cycle)
    return jsonify([{'cycle': c, 'amount': float(a)} for c, a in upcoming.items()])

# ---------------------- Export CSV ----------------------
@bp.route('/export.csv')
@login_required
def export_csv():
    import csv, io
    transactions = _store().transactions(session['user_id'], order_by=('-date', '-id'))
    si = io.StringIO()
    writer = csv.writer(si)
    writer.writerow(['date', 'type', 'description', 'amount', 'installment', 'recurrent'])
    for t in transactions:
        installment = f'{t.current_installment}/{t.installments}' if t.installments > 1 else ''
        writer.writerow([t.date.isoformat(), t.type, t.description, t.amount, installment,
                         'yes' if t.is_recurrent else 'no'])
    output = si.getvalue().encode('utf-8')
    return (output, 200, {'Content-Type': 'text/csv; charset=utf-8',
                          'Content-Disposition': 'attachment; filename=transactions.csv'})


# ---------------------- Run App ----------------------
if __name__ == '__main__':
    create_app().run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)), debug=True)
