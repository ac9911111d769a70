"""Central de atribuicoes de tarefas e notificacoes."""
