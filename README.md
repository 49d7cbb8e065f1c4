# kratt

kratt is a command-line worker that automates pull request chores. It checks
out a pull request's branch in its own git worktree, hands the pull request to
an AI agent, runs your lint and test commands, posts the results as a comment,
and commits and pushes whatever the agent changed.

It drives `git` and the GitHub CLI (`gh`), so both must be installed, and `gh`
must be logged in. Run it from inside a clone whose `origin` remote points at
GitHub.

## Installing

```
pip install .
```

## Processing a pull request

```
kratt worker run 42
```

This will:

1. read the pull request (title, body, head branch and comments) with `gh`;
2. create a worktree next to the repository, named `<repo>-<branch>`, unless
   one already exists, and switch into it;
3. send the instructions followed by the pull request, wrapped in
   `<pull-request>` tags, to the agent on its standard input;
4. run the lint and test commands;
5. post a "Kratt Worker Results" comment with both outcomes;
6. commit and push any changes.

## Starting new work

```
kratt worker start feature/auth "Implement user authentication with JWT tokens"
```

This creates and switches to the branch, writes the text to
`docs/<branch>-instructions.md`, commits and pushes it, and opens a pull
request titled `Implement <branch>`.

Branch names may not contain whitespace or any of `~ ^ : ? * [ ] \`, may not
contain `..`, and may not start or end with `.` or `/`. An existing branch is
refused.

## Options

These options apply to every command:

| Option | Default | Meaning |
| --- | --- | --- |
| `--timeout` | `30m` | Longest time the agent may run, e.g. `90s`, `1h30m` |
| `--instructions` | built-in prompt | File whose text is placed before the pull request (`run` only) |
| `--agent` | `amp,--stdin` | Agent command, comma separated |
| `--lint` | `go,fmt,./...` | Lint command, comma separated |
| `--test` | `go,test,./...` | Test command, comma separated |
| `--verbose` | off | Print progress |

For example:

```
kratt --agent my-agent,--stdin --lint ruff,check,. --test pytest worker run 42
```

## Using it from Python

`kratt.worker.Worker` takes its collaborators as arguments: a `LocalGit`, a
`GitHub` and a `CommandRunner`. `kratt.git.FakeLocalGit`,
`kratt.github.FakeGitHub` and `kratt.execution.FakeCommandRunner` hold all of
their state in memory, so the workflow can be exercised without touching a
repository or the network.