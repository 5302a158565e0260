"""
Unit tests for TypeScriptParser: TS/TSX grammars, JavaScript tagging and regex fallback.

Run: python -m pytest tests/unit/test_typescript_parser.py -v
"""
import sys
import tempfile
from pathlib import Path
from unittest import TestCase

REPO_ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(REPO_ROOT))

from modules.semantic.parsers.typescript_parser import TypeScriptParser

SERVICE_SOURCE = '''import { Base } from './base';

/** Service docs */
export class UserService extends Base implements Auditable {
  private static count = 0;

  async getUser(id: string): Promise<User> {
    return fetchUser(id);
  }

  handler = (event: Event) => {
    console.log(event);
  };
}

export interface User extends Entity {
  name: string;
}

export type UserId = string;

export const formatName = (first: string, last?: string): string => first + (last || '');

function* ids() {
  yield 1;
}

[1, 2].map(x => x * 2);
'''

STORE_SOURCE = '''export class Store extends Base {
  static create(name: string): Store {
    if (ready) {
      return new Store();
    }
  }
}

export interface Item {
  id: string;
}

export type Id = string;

export async function load(url: string) {
  return fetch(url);
}

const double = (n: number) => n * 2;
'''


def by_name(items):
    return {item.name: item for item in items}


class TypeScriptParserTestCase(TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.root = Path(self.tmp.name)
        self.parser = TypeScriptParser(str(self.root))

    def write(self, name: str, source: str) -> str:
        path = self.root / name
        path.write_text(source)
        return str(path)


class TestTypeScriptParserAST(TypeScriptParserTestCase):

    def test_constructs(self):
        items = self.parser.parse_file(self.write("service.ts", SERVICE_SOURCE))

        self.assertEqual(
            sorted(item.name for item in items),
            sorted(['UserService', 'getUser', 'handler', 'User', 'UserId', 'formatName', 'ids', 'anonymous']),
        )
        self.assertTrue(all(item.language == 'typescript' for item in items))

    def test_class_metadata(self):
        service = by_name(self.parser.parse_file(self.write("service.ts", SERVICE_SOURCE)))['UserService']

        self.assertEqual(service.type, 'class')
        self.assertTrue(service.metadata['is_exported'])
        self.assertEqual(service.metadata['superclass'], 'Base')
        self.assertEqual(service.metadata['implements'], ['Auditable'])
        self.assertEqual(service.metadata['methods'], ['getUser'])
        self.assertEqual(service.metadata['jsdoc'], "/** Service docs */")

    def test_members_and_functions(self):
        items = by_name(self.parser.parse_file(self.write("service.ts", SERVICE_SOURCE)))

        get_user = items['getUser']
        self.assertEqual(get_user.type, 'method')
        self.assertEqual(get_user.id, "service.UserService.getUser_L7")
        self.assertTrue(get_user.metadata['is_async'])
        self.assertEqual(get_user.metadata['accessibility'], 'public')
        self.assertEqual(get_user.metadata['return_type'], 'Promise<User>')
        self.assertEqual(get_user.metadata['parameters'], [{'name': 'id', 'type': 'string', 'optional': False}])

        handler = items['handler']
        self.assertEqual(handler.type, 'function')
        self.assertTrue(handler.metadata['is_arrow'])
        self.assertEqual(handler.metadata['class_name'], 'UserService')
        self.assertEqual(handler.id, "service.UserService.handler_L11")

        format_name = items['formatName']
        self.assertTrue(format_name.metadata['is_exported'])
        self.assertEqual([p['optional'] for p in format_name.metadata['parameters']], [False, True])
        self.assertEqual(format_name.metadata['return_type'], 'string')

        self.assertEqual(items['User'].type, 'interface')
        self.assertEqual(items['User'].metadata['extends'], ['Entity'])
        self.assertEqual(items['UserId'].type, 'type')
        self.assertEqual(items['UserId'].metadata['definition'], 'string')
        self.assertTrue(items['ids'].metadata['is_generator'])
        self.assertFalse(items['ids'].metadata['is_exported'])
        self.assertEqual(items['anonymous'].metadata['parameters'][0]['name'], 'x')

    def test_javascript_files_are_tagged(self):
        items = self.parser.parse_file(self.write("util.js", "export function add(a, b) {\n  return a + b;\n}\n"))

        self.assertEqual(len(items), 1)
        self.assertEqual(items[0].language, 'javascript')
        self.assertEqual(items[0].name, 'add')

    def test_tsx_uses_jsx_grammar(self):
        items = self.parser.parse_file(
            self.write("App.tsx", "export function App() {\n  return <div>Hello</div>;\n}\n")
        )

        self.assertEqual([(item.type, item.name) for item in items], [('function', 'App')])
        self.assertIn('tsx', self.parser._backends)


class TestTypeScriptParserRegex(TypeScriptParserTestCase):

    def setUp(self):
        super().setUp()
        self.parser._backends['typescript'] = None

    def test_regex_fallback(self):
        items = self.parser.parse_file(self.write("store.ts", STORE_SOURCE))

        self.assertEqual(
            [(item.type, item.id) for item in items],
            [
                ('class', 'store.Store_L1'),
                ('method', 'store.Store.create_L2'),
                ('interface', 'store.Item_L9'),
                ('type', 'store.Id_L13'),
                ('function', 'store.load_L15'),
                ('function', 'store.double_L19'),
            ],
        )

        named = by_name(items)
        self.assertEqual(named['Store'].metadata['superclass'], 'Base')
        self.assertEqual(named['Store'].metadata['end_line'], 7)
        self.assertTrue(named['create'].metadata['is_static'])
        self.assertTrue(named['load'].metadata['is_async'])
        self.assertTrue(named['load'].metadata['is_exported'])
        self.assertTrue(named['double'].metadata['is_arrow'])
