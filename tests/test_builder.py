"""Tests for recovering procedures from parsed documents."""

from typing import TYPE_CHECKING

from pytest_proctest.config import RoleSettings
from pytest_proctest.core import DocumentParser
from pytest_proctest.schema import Action, ContentBlock, VariantSlot

if TYPE_CHECKING:
    from pyfakefs.fake_filesystem import FakeFilesystem

LIST_PROCEDURE = '''
Install
=======

Get started
-----------

#. Download the package.

   .. code-block:: shell

      curl -O https://example.com/pkg.tgz

#. Start the server.

   .. code-block:: sh

      mongod --dbpath /data/db

   a. Verify it runs.
   b. Open the :guilabel:`Connect` dialog.
'''

TABBED_PROCEDURE = '''
.. procedure::

   .. step:: Connect

      .. tabs::

         .. tab:: Shell
            :tabid: shell

            .. code-block:: sh

               mongosh "<connection-string>"

         .. tab:: Python
            :tabid: python

            .. code-block:: python

               client = MongoClient("<connection-string>")

   .. step:: Insert

      .. tabs::

         .. tab:: Shell
            :tabid: shell

            .. code-block:: javascript

               db.users.insertOne({name: "Alice"})

         .. tab:: Python
            :tabid: python

            .. code-block:: python

               client.test.users.insert_one({"name": "Alice"})
'''

TUTORIAL = '''
.. composable-tutorial::
   :options: language, deployment
   :defaults: python, atlas

   .. procedure::

      .. step:: Install the driver

         Shared introduction.

         .. selected-content::
            :selections: python, atlas

            .. code-block:: sh

               pip install pymongo

         .. selected-content::
            :selections: nodejs, atlas

            .. code-block:: sh

               npm install mongodb

         .. selected-content::
            :selections: python, local

            .. code-block:: sh

               pip install "pymongo[srv]"

         Shared conclusion.
'''

IO_BLOCK = '''
#. Run the program.

   .. io-code-block::

      .. input::
         :language: python

         print(1)

      .. output::

         1
'''

BROKEN_INCLUDE = '''
First
=====

#. Step with a broken include.

   .. include:: /includes/missing.rst

Second
======

#. Step without includes.
'''


def test_list_procedure(parser: DocumentParser) -> None:
    """Build one step per top-level list item, keeping sub-items as content."""
    procedures, errors = parser.parse(LIST_PROCEDURE, 'install.txt')

    assert not errors

    procedure, = procedures
    assert procedure.title == 'Get started'
    assert procedure.filename == 'install.txt'
    assert [step.title for step in procedure.steps] == ['Download the package.', 'Start the server.']

    first, second = procedure.steps
    assert [type(item) for item in first.items] == [ContentBlock, Action]
    assert first.actions[0].kind == 'shell'
    assert first.actions[0].source == 'curl -O https://example.com/pkg.tgz'

    assert [
        (item.kind, item.source) if isinstance(item, Action) else item.text
        for item in second.items
    ] == [
        'Start the server.',
        ('cli', 'mongod --dbpath /data/db'),
        'Verify it runs.',
        'Open the :guilabel:`Connect` dialog.',
        ('ui', 'Connect'),
    ]


def test_procedure_directive(parser: DocumentParser) -> None:
    """Build steps from `step` directives titled by their arguments."""
    procedures, errors = parser.parse(TABBED_PROCEDURE)

    assert not errors

    procedure, = procedures
    assert procedure.title is None
    assert procedure.name == 'procedure at line 2'
    assert [step.title for step in procedure.steps] == ['Connect', 'Insert']


def test_tabs_become_slots(parser: DocumentParser) -> None:
    """Attach tab sets to their step as slots keyed by tab identifiers."""
    procedures, _ = parser.parse(TABBED_PROCEDURE)
    procedure, = procedures

    assert len(procedure.steps) == 2

    for step in procedure.steps:
        slot, = step.items
        assert isinstance(slot, VariantSlot)
        assert slot.dimension == ('tabs', 'python', 'shell')
        assert [alternative.key for alternative in slot.alternatives] == [('shell',), ('python',)]
        assert [alternative.title for alternative in slot.alternatives] == ['Shell', 'Python']

    shell = procedure.steps[1].items[0].alternatives[0].items[0]
    assert shell.kind == 'code'
    assert shell.language == 'javascript'


def test_tabset_dimension(parser: DocumentParser) -> None:
    """Identify a named tab set by its name and derive missing tab identifiers."""
    content = (
        '#. Pick a driver.\n'
        '\n'
        '   .. tabs::\n'
        '      :tabset: drivers\n'
        '\n'
        '      .. tab:: Python Driver\n'
        '\n'
        '         Install PyMongo.\n'
    )
    procedures, errors = parser.parse(content)

    assert not errors

    slot = next(procedures[0].steps[0].slots())
    assert slot.dimension == ('tabset', 'drivers')
    assert slot.alternatives[0].key == ('python-driver',)
    assert slot.alternatives[0].items[0].text == 'Install PyMongo.'


def test_composable_tutorial(parser: DocumentParser) -> None:
    """Turn selected content into slots of the tutorial dimension."""
    procedures, errors = parser.parse(TUTORIAL)

    assert not errors

    procedure, = procedures
    step, = procedure.steps
    assert step.title == 'Install the driver'

    assert [type(item) for item in step.items] == [
        ContentBlock,
        VariantSlot,
        VariantSlot,
        VariantSlot,
        ContentBlock,
    ]

    slots = list(step.slots())
    assert {slot.dimension for slot in slots} == {('tutorial', 'language', 'deployment')}
    assert [slot.alternatives[0].key for slot in slots] == [
        ('python', 'atlas'),
        ('nodejs', 'atlas'),
        ('python', 'local'),
    ]


def test_io_code_block(parser: DocumentParser) -> None:
    """Execute only the input of an io-code-block."""
    procedures, errors = parser.parse(IO_BLOCK)

    assert not errors

    step, = procedures[0].steps
    assert [type(item) for item in step.items] == [ContentBlock, Action, ContentBlock]

    action = step.items[1]
    assert action.kind == 'code'
    assert action.language == 'python'
    assert action.executable
    assert step.items[2].text == '1'


def test_inline_references() -> None:
    """Turn hyperlinks and URL roles into URL actions."""
    parser = DocumentParser(
        roles={'manual': RoleSettings(url='https://www.mongodb.com/docs/manual%s', trailing_slash=True)},
        check_urls=False,
    )
    content = '#. Read `the docs <https://www.mongodb.com/docs/>`__ and :manual:`/reference`.\n'

    procedures, _ = parser.parse(content)
    actions = procedures[0].steps[0].actions

    assert [(action.kind, action.source) for action in actions] == [
        ('url', 'https://www.mongodb.com/docs/'),
        ('url', 'https://www.mongodb.com/docs/manual/reference/'),
    ]
    assert not any(action.executable for action in actions)


def test_unbuildable_procedure(fs: 'FakeFilesystem', parser: DocumentParser) -> None:
    """Mark only the procedure holding a failed reference as unbuildable."""
    fs.create_dir('/docs/source')

    procedures, errors = parser.parse(BROKEN_INCLUDE, '/docs/source/page.txt')

    assert len(errors) == 1
    assert [procedure.title for procedure in procedures] == ['First', 'Second']

    broken, intact = procedures
    assert broken.error is not None
    assert broken.error.startswith('Cannot read included file /docs/source/includes/missing.rst')
    assert intact.error is None


def test_no_procedures(parser: DocumentParser) -> None:
    """Yield nothing for documents without procedures."""
    procedures, errors = parser.parse('Title\n=====\n\nJust prose.\n\n- a bullet\n')

    assert procedures == ()
    assert errors == ()
