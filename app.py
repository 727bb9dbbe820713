#!/usr/bin/env python3
"""
Query Results Browser - Main Application Entry Point

This is the main Flask application that runs SQL statements against a
PostgreSQL database and shows their results as paginated, sortable HTML
tables with per-row edit, copy and delete links.
"""

from flask import Flask, request, jsonify, session, redirect, Response
import hmac
import os
import re
import logging
import secrets
from datetime import datetime
from dotenv import load_dotenv

# Import our components
from resultgrid.config.manager import Config_Manager, ConfigurationError
from resultgrid.database.connector import Database_Connector, DatabaseConnectionError, DatabaseQueryError
from resultgrid.database.metadata import TYPE_JSON, TYPE_STRING
from resultgrid.display import session as session_store
from resultgrid.display.messages import Message
from resultgrid.display.urls import SignatureError, Url_Builder
from resultgrid.formatting.formatter import Result_Formatter
from resultgrid.parsing.analyzer import StatementParseError
from resultgrid.rendering import Template_Renderer
from resultgrid.sql import Query_Runner

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ROW_CHECKBOX_PATTERN = re.compile(r'^rows_to_delete\[(\d+)\]$')
FIELD_PATTERN = re.compile(r'^fields\[(.+)\]$')
FIELD_NULL_PATTERN = re.compile(r'^fields_null\[(.+)\]$')

# Media types /table/get-field serves inline; anything else is a download
INLINE_MIMETYPES = {'image/jpeg', 'image/png', 'image/gif', 'image/webp'}

# Text values longer than this get a textarea in the change form
TEXTAREA_LENGTH = 60


def _is_safe_goto(goto: str) -> bool:
    return bool(goto) and goto.startswith('/') and not goto.startswith('//')


def _session_token() -> str:
    """Form token of the current session, created on first use."""
    if 'token' not in session:
        session['token'] = secrets.token_hex(16)
    return session['token']


def _check_token(token) -> bool:
    expected = session.get('token')
    return bool(expected and token) and hmac.compare_digest(expected.encode('utf-8'), token.encode('utf-8'))


def _collect_signed_rows(form, url_builder: Url_Builder):
    """WHERE clauses of the checked rows; each must carry a valid signature."""
    where_clauses = []
    for key in form.keys():
        match = ROW_CHECKBOX_PATTERN.match(key)
        if not match:
            continue
        where_clause = form.get(key, '')
        signature = form.get(f'rows_signature[{match.group(1)}]')
        if not url_builder.check_where_clause_signature(where_clause, signature):
            raise SignatureError("There is an issue with your request: a row condition signature is invalid.")
        if where_clause not in where_clauses:
            where_clauses.append(where_clause)
    return where_clauses


def create_app(config_manager=None, database_connector=None):
    """Create and configure the Flask application.

    Args:
        config_manager: Loaded configuration; read from RESULTGRID_CONFIG
            (default config.yaml) when omitted
        database_connector: Connector to use instead of a new pooled one
    """
    app = Flask(__name__)

    # Basic configuration
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
    app.config['DEBUG'] = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'

    query_runner = None
    renderer = None
    result_formatter = Result_Formatter()
    initialization_errors = []

    # Initialize configuration and components with proper error handling
    try:
        # Step 1: Load configuration
        if config_manager is None:
            config_manager = Config_Manager(os.environ.get('RESULTGRID_CONFIG', 'config.yaml'))
            config_manager.load_config()
        logger.info("Configuration loaded successfully")

        app.config['SECRET_KEY'] = config_manager.app_config.secret_key
        display_config = config_manager.display_config

        # Step 2: Initialize database connector with configuration
        if database_connector is None:
            database_connector = Database_Connector(
                config_manager.database_config, display_fields=display_config.display_fields
            )
            database_connector.initialize_pool()
        logger.info("Database connector initialized successfully")

        # Step 3: Rendering and statement execution
        url_builder = Url_Builder(app.config['SECRET_KEY'])
        renderer = Template_Renderer(url_builder, token_provider=_session_token)
        query_runner = Query_Runner(database_connector, display_config, url_builder, renderer)
        logger.info("All application components initialized successfully")

    except ConfigurationError as e:
        logger.error("Configuration error during initialization: %s", str(e))
        initialization_errors.append(str(e))
    except DatabaseConnectionError as e:
        logger.error("Database error during initialization: %s", str(e))
        initialization_errors.append(str(e))
    except Exception as e:
        logger.error("Unexpected error during initialization: %s", str(e))
        initialization_errors.append(str(e))

    if renderer is None:
        # error pages still need a renderer
        url_builder = Url_Builder(app.config['SECRET_KEY'])
        renderer = Template_Renderer(url_builder, token_provider=_session_token)

    def render_page(template_name, status=200, **context):
        return Response(str(renderer.render(template_name, context)), status=status, mimetype='text/html')

    def render_error(message, sql_query='', status=400, db='', table=''):
        content = renderer.render('message.html', {
            'message': message,
            'sql_query': sql_query,
            'message_type': 'error',
        })
        return render_page('sql.html', status=status, content=content, db=db, table=table,
                           sql_query=sql_query, printview=False)

    def components_ready():
        return query_runner is not None

    def not_initialized():
        return render_error(
            'Application components not properly initialized. Please check configuration.', status=503
        )

    @app.route('/')
    def index():
        """Query form and the tables of the current schema."""
        if not components_ready():
            return not_initialized()

        db = request.args.get('db') or database_connector.default_schema
        try:
            tables = database_connector.list_tables(db)
        except (DatabaseConnectionError, DatabaseQueryError) as e:
            logger.error("Cannot list tables of %s: %s", db, str(e))
            tables = []
        return render_page('index.html', db=db, tables=tables, sql_query='',
                           max_rows=query_runner.config.max_rows)

    @app.route('/sql', methods=['GET', 'POST'])
    def run_sql():
        """Run a statement and display its results."""
        if not components_ready():
            return not_initialized()

        values = request.values
        db = values.get('db', '')
        table = values.get('table', '')
        sql_query = values.get('sql_query', '')
        goto = values.get('goto', '')

        try:
            if request.method == 'GET' and sql_query:
                url_builder.require_sql_signature(sql_query, values.get('sql_signature'))
            elif sql_query and not _check_token(values.get('token')):
                # a posted statement needs the form token or its signature
                url_builder.require_sql_signature(sql_query, values.get('sql_signature'))

            output = query_runner.run(session, db, table, sql_query, values, goto)

            if not output.has_rows and _is_safe_goto(goto):
                return redirect(goto)

            return render_page('sql.html', content=output.content, db=output.db, table=output.table,
                               sql_query=output.sql_query, printview=output.printview,
                               generated_at=datetime.now().strftime('%Y-%m-%d %H:%M:%S'))

        except SignatureError as e:
            return render_error(str(e), status=400, db=db, table=table)

        except StatementParseError as e:
            logger.error("Statement parse error: %s", str(e))
            return render_error(str(e), sql_query, status=400, db=db, table=table)

        except DatabaseConnectionError as e:
            logger.error("Database connection error: %s", str(e))
            return render_error('Unable to connect to the database. Please check your database configuration.',
                                sql_query, status=503, db=db, table=table)

        except DatabaseQueryError as e:
            logger.error("Database query error: %s", str(e))
            return render_error(str(e), sql_query, status=400, db=db, table=table)

        except Exception as e:
            logger.error("Unexpected error in run_sql: %s", str(e))
            return render_error('An unexpected error occurred while processing your query.', sql_query,
                                status=500, db=db, table=table)

    @app.route('/table/get-field')
    def get_field():
        """Send the value of one column of one row."""
        if not components_ready():
            return not_initialized()

        db = request.args.get('db', '')
        table = request.args.get('table', '')
        column = request.args.get('transform_key', '')
        where_clause = request.args.get('where_clause', '')

        if not url_builder.check_where_clause_signature(where_clause, request.args.get('where_clause_sign')):
            return render_error('There is an issue with your request: the row condition signature is invalid.')

        try:
            value = database_connector.fetch_field(db, table, column, where_clause)
        except (DatabaseConnectionError, DatabaseQueryError) as e:
            logger.error("Cannot fetch %s.%s.%s: %s", db, table, column, str(e))
            return render_error(str(e), status=404, db=db, table=table)

        if value is None:
            value = b''
        elif not isinstance(value, bytes):
            value = str(result_formatter.format_value(value)).encode('utf-8')

        mimetype = request.args.get('mimetype', '')
        if mimetype in INLINE_MIMETYPES:
            return Response(value, mimetype=mimetype)

        filename = re.sub(r'[^\w.-]', '_', f"{table}-{column}.bin")
        return Response(value, mimetype='application/octet-stream',
                        headers={'Content-Disposition': f'attachment; filename="{filename}"'})

    @app.route('/table/change', methods=['GET', 'POST'])
    def change_row():
        """Edit or copy form of one row; POST stores it."""
        if not components_ready():
            return not_initialized()

        values = request.values
        db = values.get('db', '')
        table = values.get('table', '')
        where_clause = values.get('where_clause', '')
        default_action = values.get('default_action') or ('update' if where_clause else 'insert')
        sql_query = values.get('sql_query', '')

        if where_clause and not url_builder.check_where_clause_signature(
                where_clause, values.get('where_clause_signature')):
            return render_error('There is an issue with your request: the row condition signature is invalid.',
                                db=db, table=table)
        if default_action == 'update' and not where_clause:
            return render_error('No row selected for editing.', db=db, table=table)
        if request.method == 'POST' and not _check_token(request.form.get('token')):
            return render_error('There is an issue with your request: the form token is invalid.',
                                db=db, table=table)

        try:
            if request.method == 'POST':
                fields, nulls = {}, []
                for key in request.form.keys():
                    field_match = FIELD_PATTERN.match(key)
                    if field_match:
                        fields[field_match.group(1)] = request.form.get(key)
                    null_match = FIELD_NULL_PATTERN.match(key)
                    if null_match:
                        nulls.append(null_match.group(1))

                affected = query_runner.save_row(db, table, where_clause, default_action, fields, nulls)
                message = Message.success('%s row(s) affected.')
                message.add_param(affected)

                if sql_query and url_builder.check_sql_query_signature(sql_query, values.get('sql_signature')):
                    return redirect(url_builder.get_from_route('/sql', url_builder.sql_params(
                        sql_query, db=db, table=table, message_to_show=str(message),
                    )))
                content = renderer.render('message.html', {
                    'message': message.get_message(), 'sql_query': '', 'message_type': 'success',
                })
                return render_page('sql.html', content=content, db=db, table=table,
                                   sql_query='', printview=False)

            result = query_runner.get_row(db, table, where_clause)
            row = result.fetch_row() if where_clause else None
            if where_clause and row is None:
                return render_error('The requested row does not exist.', status=404, db=db, table=table)

            columns = []
            for index, meta in enumerate(result.fields):
                value = None
                if row is not None:
                    value = result_formatter.format_value(row[index], is_json=meta.is_type(TYPE_JSON))
                columns.append({
                    'name': meta.name,
                    'type_name': meta.type_name,
                    'is_not_null': meta.is_not_null,
                    'is_binary': meta.is_binary,
                    'value': value,
                    'multiline': meta.is_type(TYPE_JSON) or (
                        meta.is_type(TYPE_STRING) and value is not None and len(str(value)) > TEXTAREA_LENGTH
                    ),
                })

            return render_page('change.html', db=db, table=table, columns=columns,
                               where_clause=where_clause,
                               where_clause_signature=values.get('where_clause_signature', ''),
                               default_action=default_action, goto=values.get('goto', ''),
                               sql_query=sql_query, sql_signature=values.get('sql_signature', ''),
                               message=None)

        except DatabaseConnectionError as e:
            logger.error("Database connection error: %s", str(e))
            return render_error('Unable to connect to the database. Please check your database configuration.',
                                status=503, db=db, table=table)

        except DatabaseQueryError as e:
            logger.error("Database query error: %s", str(e))
            return render_error(str(e), status=400, db=db, table=table)

        except Exception as e:
            logger.error("Unexpected error in change_row: %s", str(e))
            return render_error('An unexpected error occurred while saving the row.', status=500, db=db, table=table)

    @app.route('/table/delete-rows', methods=['POST'])
    def delete_rows():
        """Delete the rows checked in a results table."""
        if not components_ready():
            return not_initialized()

        form = request.form
        db = form.get('db', '')
        table = form.get('table', '')
        sql_query = form.get('sql_query', '')

        try:
            where_clauses = _collect_signed_rows(form, url_builder)
            if not where_clauses:
                return render_error('No rows selected.', db=db, table=table)

            deleted = query_runner.delete_rows(db, table, where_clauses)
            message = Message.success('%s row(s) deleted.')
            message.add_param(deleted)

            if sql_query and url_builder.check_sql_query_signature(sql_query, form.get('sql_signature')):
                return redirect(url_builder.get_from_route('/sql', url_builder.sql_params(
                    sql_query, db=db, table=table, message_to_show=str(message),
                )))
            content = renderer.render('message.html', {
                'message': message.get_message(), 'sql_query': '', 'message_type': 'success',
            })
            return render_page('sql.html', content=content, db=db, table=table, sql_query='', printview=False)

        except SignatureError as e:
            return render_error(str(e), db=db, table=table)

        except DatabaseConnectionError as e:
            logger.error("Database connection error: %s", str(e))
            return render_error('Unable to connect to the database. Please check your database configuration.',
                                status=503, db=db, table=table)

        except DatabaseQueryError as e:
            logger.error("Database query error: %s", str(e))
            return render_error(str(e), status=400, db=db, table=table)

    @app.route('/sql/export', methods=['GET', 'POST'])
    def export_results():
        """Full result of a statement, or of the checked rows, as CSV."""
        if not components_ready():
            return not_initialized()

        values = request.values
        db = values.get('db', '') or database_connector.default_schema
        table = values.get('table', '')
        sql_query = values.get('sql_query', '')

        try:
            where_clauses = _collect_signed_rows(request.form, url_builder) if request.method == 'POST' else []
            if where_clauses:
                export_query = query_runner.build_rows_query(db, table, where_clauses)
            else:
                url_builder.require_sql_signature(sql_query, values.get('sql_signature'))
                export_query = sql_query

            csv_text = query_runner.export_csv(db, export_query)

        except SignatureError as e:
            return render_error(str(e), db=db, table=table)

        except (DatabaseConnectionError, DatabaseQueryError) as e:
            logger.error("Export failed: %s", str(e))
            return render_error(str(e), sql_query, status=400, db=db, table=table)

        filename = re.sub(r'[^\w.-]', '_', f"{table or 'query'}.csv")
        return Response(csv_text, mimetype='text/csv',
                        headers={'Content-Disposition': f'attachment; filename="{filename}"'})

    @app.route('/sql/column-preferences', methods=['POST'])
    def column_preferences():
        """Store the column order or visibility of a table's results."""
        data = request.get_json(silent=True) or request.form
        db = data.get('db', '')
        table = data.get('table', '')
        if not db or not table:
            return jsonify({
                'success': False,
                'error': {
                    'type': 'invalid_request',
                    'message': 'Missing db or table in request',
                    'code': 'INVALID_REQUEST'
                }
            }), 400

        stored = []
        try:
            if 'col_order' in data:
                col_order = data.get('col_order')
                if isinstance(col_order, str):
                    col_order = [part for part in col_order.split(',') if part != '']
                col_order = [int(value) for value in col_order]
                session_store.set_ui_prop(session, db, table, session_store.PROP_COLUMN_ORDER, col_order)
                stored.append('col_order')
            if 'col_visib' in data:
                col_visib = data.get('col_visib')
                if isinstance(col_visib, str):
                    col_visib = [part for part in col_visib.split(',') if part != '']
                col_visib = [int(value) for value in col_visib]
                session_store.set_ui_prop(session, db, table, session_store.PROP_COLUMN_VISIB, col_visib)
                stored.append('col_visib')
        except (TypeError, ValueError):
            return jsonify({
                'success': False,
                'error': {
                    'type': 'invalid_request',
                    'message': 'Column preferences must be lists of integers',
                    'code': 'INVALID_REQUEST'
                }
            }), 400

        return jsonify({'success': True, 'stored': stored})

    @app.route('/health')
    def health_check():
        """Application health check endpoint with component status."""
        health_status = {
            'status': 'healthy',
            'service': 'resultgrid',
            'version': '1.0.0',
            'timestamp': datetime.now().isoformat(),
            'components': {},
            'initialization_errors': initialization_errors
        }

        # Check configuration manager
        if config_manager is not None and not initialization_errors:
            try:
                config_manager.validate_required_fields()
                health_status['components']['config'] = {
                    'status': 'healthy',
                    'details': 'Configuration loaded and validated'
                }
            except ConfigurationError as e:
                health_status['components']['config'] = {
                    'status': 'unhealthy',
                    'error': str(e)
                }
                health_status['status'] = 'degraded'
        else:
            health_status['components']['config'] = {
                'status': 'unhealthy',
                'error': 'Configuration manager not initialized'
            }
            health_status['status'] = 'degraded'

        # Check database connector
        if database_connector is not None:
            try:
                database_connector.test_connection()
                health_status['components']['database'] = {
                    'status': 'healthy',
                    'details': 'Database connection successful'
                }
            except DatabaseConnectionError as e:
                health_status['components']['database'] = {
                    'status': 'unhealthy',
                    'error': str(e)
                }
                health_status['status'] = 'degraded'
        else:
            health_status['components']['database'] = {
                'status': 'unhealthy',
                'error': 'Database connector not initialized'
            }
            health_status['status'] = 'degraded'

        return jsonify(health_status)

    def shutdown_handler():
        """Handle application shutdown gracefully."""
        logger.info("Shutting down application...")
        if database_connector is not None:
            database_connector.close_pool()

    # Register shutdown handler
    import atexit
    atexit.register(shutdown_handler)

    return app


if __name__ == '__main__':
    app = create_app()

    # Get configuration from environment or use defaults
    host = os.environ.get('FLASK_HOST', '0.0.0.0')
    port = int(os.environ.get('FLASK_PORT', 5000))
    debug = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'

    print(f"Starting Query Results Browser on {host}:{port}")
    print("Make sure you have a config.yaml file with your database configuration")

    try:
        app.run(host=host, port=port, debug=debug)
    except KeyboardInterrupt:
        print("\nShutting down gracefully...")
