"""
Base class for data access objects.
"""
from dbcontext.context import ExecutionContext

__all__ = ['Dao']


class Dao:
    """Data access object bound to an execution context.

    Subclasses build and run their commands through ``self.context`` and
    never see a connection. Whether their work is auto-committed or joins a
    transaction is decided by whoever passes the context in.

    Examples
        class ItemDao(Dao):
            def get_items(self, country):
                cmd = self.context.create_stored_proc_command('GetItems')
                cmd.add_string('country', country)
                return self.context.execute_rows(cmd)

        ItemDao(AutoCommitContext(source)).get_items('us')

        with TransactionalContext(source) as ctx, ctx.transaction():
            ItemDao(ctx).save_item(...)
    """

    def __init__(self, context: ExecutionContext) -> None:
        self._context = context

    @property
    def context(self) -> ExecutionContext:
        return self._context
